"""Parsing of Go-style duration strings such as ``1h30m``."""

from __future__ import annotations

import re
from typing import Any

from .errors import ValidationError

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_TERM_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Any) -> float:
    """Convert a duration to seconds.

    Accepts plain numbers (seconds) and Go duration strings (``"90s"``,
    ``"1h30m"``, ``"1.5h"``).

    Raises:
        ValidationError: If the value is not a positive duration
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid duration {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if re.fullmatch(r"\d+(\.\d+)?", text):
            seconds = float(text)
        else:
            pos = 0
            seconds = 0.0
            for match in _TERM_RE.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _UNITS[match.group(2)]
                pos = match.end()
            if not text or pos != len(text):
                raise ValidationError(f"Invalid duration {value!r}, expected a value such as '30m' or '1h30m'")
    else:
        raise ValidationError(f"Invalid duration {value!r}")

    if seconds <= 0:
        raise ValidationError(f"Duration {value!r} must be positive")
    return seconds
