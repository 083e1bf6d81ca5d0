"""Tests for duration parsing."""

from __future__ import annotations

import pytest

from pullsecret_rotator.utils.durations import parse_duration
from pullsecret_rotator.utils.errors import ValidationError


@pytest.mark.parametrize(
    "value,expected",
    [
        (90, 90.0),
        (1.5, 1.5),
        ("45", 45.0),
        ("90s", 90.0),
        ("30m", 1800.0),
        ("1h30m", 5400.0),
        ("1.5h", 5400.0),
        ("500ms", 0.5),
        (" 2h ", 7200.0),
    ],
)
def test_valid_durations(value, expected):
    assert parse_duration(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", ["", "abc", "10x", "h", "1h 30m", "-5m", 0, -1, "0s", True, None, [1]])
def test_invalid_durations(value):
    with pytest.raises(ValidationError):
        parse_duration(value)
