"""Base handler class with common functionality for reconciliation components."""

from __future__ import annotations

import logging
import time
from typing import Callable

from .. import metrics
from ..constants import (
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_VALIDATE_FAILED,
    KIND_SECRET_ROTATOR,
)
from ..models import ReconcileResult
from ..utils.context import ReconcileContext
from ..utils.errors import ReconcileError, ResourceNotFoundError, ValidationError, sanitize_exception
from ..utils.events import emit_reconcile_failed, emit_validate_failed


class BaseHandler:
    """Base class for handlers taking part in a SecretRotator pass."""

    def __init__(self, kind: str = KIND_SECRET_ROTATOR):
        """Initialize base handler.

        Args:
            kind: The Kubernetes resource kind handled
        """
        self.kind = kind
        self.logger = logging.getLogger(__name__)

    def handle_reconcile_error(self, ctx: ReconcileContext, error: ReconcileError) -> ReconcileResult:
        """Log, report and schedule a failed pass consistently.

        Args:
            ctx: Context of the failed pass
            error: Error that ended the pass

        Returns:
            Result carrying the error's retry delay
        """
        if isinstance(error, ResourceNotFoundError):
            ctx.log_info(f"{self.kind} {ctx.name} not found, stopping reconciliation", reason="NotFound")
            metrics.reconcile_total.labels(kind=self.kind, result="not_found").inc()
            return ReconcileResult(requeue_after=None, message=str(error))

        sanitized_error = sanitize_exception(error)
        error_type = type(error.cause or error).__name__
        reason = EVENT_REASON_VALIDATE_FAILED if isinstance(error, ValidationError) else EVENT_REASON_RECONCILE_FAILED

        ctx.log_error(
            f"Reconciliation failed, retrying in {error.retry_in}s",
            error=error,
            reason=reason,
            retry_in=error.retry_in,
        )
        if ctx.body:
            if isinstance(error, ValidationError):
                emit_validate_failed(ctx.event_target(), sanitized_error)
            else:
                emit_reconcile_failed(ctx.event_target(), sanitized_error)
        metrics.error_total.labels(kind=self.kind, error_type=error_type).inc()
        metrics.reconcile_total.labels(kind=self.kind, result="failed").inc()
        return ReconcileResult(requeue_after=error.retry_in, message=sanitized_error)

    def reconcile_with_metrics(
        self,
        ctx: ReconcileContext,
        reconcile_fn: Callable[[], ReconcileResult],
    ) -> ReconcileResult:
        """Execute a pass with metrics and error handling.

        Reconcile errors become a scheduled retry; any other exception is
        counted and propagated to the caller.
        """
        metrics.reconcile_total.labels(kind=self.kind, result="started").inc()

        start_time = time.time()
        try:
            result = reconcile_fn()
            metrics.reconcile_total.labels(kind=self.kind, result="success").inc()
            return result
        except ReconcileError as e:
            return self.handle_reconcile_error(ctx, e)
        except Exception as e:
            metrics.error_total.labels(kind=self.kind, error_type=type(e).__name__).inc()
            metrics.reconcile_total.labels(kind=self.kind, result="error").inc()
            ctx.log_error("Reconciliation failed unexpectedly", error=e, reason="ReconciliationFailed")
            raise
        finally:
            duration = time.time() - start_time
            metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(duration)
