"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_DELETING,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_SECRETS_ROTATED,
    EVENT_REASON_TOKEN_TTL_MISCONFIGURED,
    EVENT_REASON_VALIDATE_FAILED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Resource body (apiVersion, kind and metadata are used)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_failed(body: dict[str, Any], message: str) -> None:
    """Emit validation failed event."""
    emit_event(body, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")


def emit_secrets_rotated(body: dict[str, Any], provisioned: int, failed: int) -> None:
    """Emit secrets rotated event."""
    emit_event(
        body,
        EVENT_REASON_SECRETS_ROTATED,
        f"Secrets rotated in {provisioned} namespace(s), {failed} namespace(s) with failures",
    )


def emit_deleting(body: dict[str, Any], name: str) -> None:
    """Emit deletion started event."""
    emit_event(
        body,
        EVENT_REASON_DELETING,
        f"SecretRotator {name} is being deleted",
        type_="Warning",
    )


def emit_token_ttl_misconfigured(body: dict[str, Any], ttl_seconds: float, refresh_seconds: float) -> None:
    """Emit token TTL shorter than refresh interval event."""
    emit_event(
        body,
        EVENT_REASON_TOKEN_TTL_MISCONFIGURED,
        (
            f"The token TTL ({int(ttl_seconds)}s) is shorter than the refresh interval "
            f"({int(refresh_seconds)}s), tokens will expire before they are rotated"
        ),
        type_="Warning",
    )
