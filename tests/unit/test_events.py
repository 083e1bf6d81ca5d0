"""Tests for Kubernetes event utilities."""

from __future__ import annotations

from pullsecret_rotator.utils.events import (
    emit_deleting,
    emit_event,
    emit_reconcile_failed,
    emit_secrets_rotated,
    emit_token_ttl_misconfigured,
    emit_validate_failed,
)

BODY = {"apiVersion": "rotator.cloud37.dev/v1alpha1", "kind": "SecretRotator", "metadata": {"name": "example"}}


class TestEmitEvent:
    """Test cases for emit_event function."""

    def test_emit_event_normal(self, kopf_event):
        """Test emitting normal event."""
        emit_event(BODY, "TestReason", "Test message")

        kopf_event.assert_called_once_with(
            BODY,
            reason="TestReason",
            message="Test message",
            type="Normal",
        )

    def test_emit_event_warning(self, kopf_event):
        """Test emitting warning event."""
        emit_event(BODY, "ErrorReason", "Error occurred", type_="Warning")

        kopf_event.assert_called_once_with(
            BODY,
            reason="ErrorReason",
            message="Error occurred",
            type="Warning",
        )


class TestEventHelpers:
    """Test cases for the SecretRotator event helpers."""

    def test_reconcile_failed(self, kopf_event):
        emit_reconcile_failed(BODY, "boom")

        assert kopf_event.call_args.kwargs == {"reason": "ReconcileFailed", "message": "boom", "type": "Warning"}

    def test_validate_failed(self, kopf_event):
        emit_validate_failed(BODY, "bad spec")

        assert kopf_event.call_args.kwargs["reason"] == "ValidateFailed"
        assert kopf_event.call_args.kwargs["type"] == "Warning"

        assert kopf_event.call_args.kwargs["reason"] == "MissingResource"
        assert "example" in kopf_event.call_args.kwargs["message"]

    def test_secrets_rotated(self, kopf_event):
        """Test the summary event of a completed pass."""
        emit_secrets_rotated(BODY, 3, 1)

        kwargs = kopf_event.call_args.kwargs
        assert kwargs["reason"] == "SecretsRotated"
        assert kwargs["type"] == "Normal"
        assert "3 namespace(s)" in kwargs["message"]
        assert "1 namespace(s) with failures" in kwargs["message"]

    def test_deleting(self, kopf_event):
        emit_deleting(BODY, "example")

        assert kopf_event.call_args.kwargs["reason"] == "Deleting"

    def test_token_ttl_misconfigured(self, kopf_event):
        """Test the warning raised when tokens outlive their refresh."""
        emit_token_ttl_misconfigured(BODY, 1800.0, 3600.0)

        kwargs = kopf_event.call_args.kwargs
        assert kwargs["reason"] == "TokenTTLMisconfigured"
        assert kwargs["type"] == "Warning"
        assert "(1800s)" in kwargs["message"]
        assert "(3600s)" in kwargs["message"]
