"""Reconcile error taxonomy and error sanitization utilities."""

from __future__ import annotations

import re
from typing import Any

from ..constants import RETRY_DELAY_SECONDS

# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"access[_\s]?key[_\s]?id[:\s]+([A-Z0-9]{16,20})",
    r"secret[_\s]?access[_\s]?key[:\s]+([A-Za-z0-9/+=]{40})",
    r"session[_\s]?token[:\s]+([A-Za-z0-9/+=]+)",
    r"arn:aws:iam::(\d{12})",
    r"authorization[:\s]+([^\s,;\)]+)",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "access_key_id",
    "secret_access_key",
    "session_token",
    "access_token",
    "password",
    "secret",
    "credentials",
    "token",
    "auth",
}

_MISSING = object()


class ReconcileError(Exception):
    """A failure that ends the current reconciliation pass.

    ``retry_in`` is the delay in seconds before the resource is retried;
    ``None`` stops the resource without requeueing it.
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        retry_in: Any = _MISSING,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.retry_in: float | None = RETRY_DELAY_SECONDS if retry_in is _MISSING else retry_in

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"


class ResourceNotFoundError(ReconcileError):
    """The SecretRotator no longer exists; reconciliation stops."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message, cause=cause, retry_in=None)


class ValidationError(ReconcileError):
    """The declared spec is invalid."""


class SelectorError(ValidationError):
    """The namespace label selector cannot be parsed."""


class CredentialExchangeError(ReconcileError):
    """Federated identity could not be exchanged for signed AWS credentials."""


class TokenRequestError(ReconcileError):
    """The registry token endpoint rejected the request or returned garbage."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.status_code = status_code


class StatusUpdateError(ReconcileError):
    """The resource status or metadata could not be persisted."""


class SecretOperationError(Exception):
    """A single (namespace, secret) operation failed; never ends the pass."""


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(
            pattern,
            lambda m: m.group(0).replace(m.group(1), "[REDACTED]"),
            sanitized,
            flags=re.IGNORECASE,
        )

    for field in SENSITIVE_FIELDS:
        sanitized = re.sub(
            rf"\b{field}\b[\"']?[:=]\s*[\"']?([^\s,;\)\"']+)",
            f"{field}: [REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: BaseException) -> str:
    """Sanitize exception message."""
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    all_sensitive = SENSITIVE_FIELDS | (sensitive_keys or set())
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in all_sensitive):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
