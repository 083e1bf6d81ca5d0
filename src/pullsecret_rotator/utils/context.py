"""Request-scoped reconciliation context."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from ..constants import API_GROUP_VERSION, CONTROLLER_NAME, KIND_SECRET_ROTATOR
from ..logging import log_resource_event
from .errors import sanitize_exception

logger = logging.getLogger(__name__)


def new_correlation_id() -> str:
    """Generate a correlation ID for one reconciliation pass."""
    return uuid.uuid4().hex[:16]


@dataclass
class ReconcileContext:
    """Everything a component needs to log and post events for one pass.

    A context is created per pass and handed explicitly to every component;
    nothing about the pass lives in module state.
    """

    name: str
    correlation_id: str = field(default_factory=new_correlation_id)
    body: dict[str, Any] = field(default_factory=dict)
    kind: str = KIND_SECRET_ROTATOR

    @property
    def uid(self) -> str:
        return self.body.get("metadata", {}).get("uid", "unknown")

    def bind(self, body: dict[str, Any]) -> None:
        """Attach the latest fetched resource body."""
        self.body = body

    def event_target(self) -> dict[str, Any]:
        """Object reference used when posting events."""
        metadata = self.body.get("metadata", {})
        return {
            "apiVersion": self.body.get("apiVersion", API_GROUP_VERSION),
            "kind": self.body.get("kind", self.kind),
            "metadata": {"name": metadata.get("name", self.name), "uid": metadata.get("uid")},
        }

    def _log(self, level: int, message: str, event: str, reason: str, **kwargs: Any) -> None:
        log_resource_event(
            logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=self.name,
            uid=self.uid,
            event=event,
            reason=reason,
            message=message,
            level=level,
            correlation_id=self.correlation_id,
            **kwargs,
        )

    def log_info(self, message: str, event: str = "info", reason: str = "Info", **kwargs: Any) -> None:
        self._log(logging.INFO, message, event, reason, **kwargs)

    def log_warning(self, message: str, event: str = "warning", reason: str = "Warning", **kwargs: Any) -> None:
        self._log(logging.WARNING, message, event, reason, **kwargs)

    def log_error(
        self,
        message: str,
        error: BaseException | None = None,
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error entry, with sanitized exception details when given."""
        if error is not None:
            kwargs["error"] = sanitize_exception(error)
            kwargs["error_type"] = type(error).__name__
        self._log(logging.ERROR, message, event, reason, **kwargs)
