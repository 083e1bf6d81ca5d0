"""Status reporting for SecretRotator passes."""

from __future__ import annotations

import copy
from typing import Any

from kubernetes.client.exceptions import ApiException

from .. import metrics
from ..models import WorkingState
from ..utils.conditions import (
    STATUS_FALSE,
    STATUS_TRUE,
    STATUS_UNKNOWN,
    set_available_condition,
    set_degraded_condition,
)
from ..utils.context import ReconcileContext
from ..utils.errors import ResourceNotFoundError, StatusUpdateError
from ..utils.events import emit_secrets_rotated
from .base import BaseHandler

REASON_RECONCILING = "Reconciling"
REASON_PARTIAL_FAILURE = "PartialFailure"
REASON_AS_EXPECTED = "AsExpected"


def build_status(
    state: WorkingState,
    conditions: list[dict[str, Any]],
    generation: int | None,
) -> dict[str, Any]:
    """Aggregate the outcome of a pass into the status block.

    Args:
        state: Working state at the end of the pass
        conditions: Conditions currently stored on the resource
        generation: Generation of the reconciled spec

    Returns:
        The complete status, with deterministic ordering
    """
    conditions = copy.deepcopy(conditions)
    secrets = ", ".join(state.secret_names)
    set_available_condition(
        conditions,
        STATUS_TRUE,
        REASON_RECONCILING,
        f"Secrets [{secrets}] reconciled in namespaces matching {state.selector}",
        observed_generation=generation,
    )
    if state.failed_namespaces:
        set_degraded_condition(
            conditions,
            STATUS_TRUE,
            REASON_PARTIAL_FAILURE,
            f"Secrets could not be reconciled in {len(state.failed_namespaces)} namespace(s)",
            observed_generation=generation,
        )
    else:
        set_degraded_condition(
            conditions,
            STATUS_FALSE,
            REASON_AS_EXPECTED,
            "All secrets reconciled",
            observed_generation=generation,
        )

    return {
        "conditions": conditions,
        "provisionedNamespaces": sorted(state.provisioned_namespaces),
        "failedNamespaces": [
            {"namespace": namespace, "reason": "; ".join(reasons)}
            for namespace, reasons in sorted(state.failed_namespaces.items())
        ],
        "secretManagedByNamespaces": {
            namespace: list(names) for namespace, names in sorted(state.secret_managed_by_namespaces.items())
        },
    }


class StatusReporter(BaseHandler):
    """Persists conditions and per-namespace outcomes of a SecretRotator."""

    def __init__(self, store: Any) -> None:
        super().__init__()
        self.store = store

    def _write(self, ctx: ReconcileContext, mutate) -> dict[str, Any]:
        try:
            body = self.store.update_rotator_status(ctx.name, mutate)
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFoundError(f"{self.kind} {ctx.name} not found", cause=e) from e
            raise StatusUpdateError(f"Unable to update status of {ctx.name}", cause=e) from e
        ctx.bind(body)
        return body

    def mark_reconciling(self, ctx: ReconcileContext, rotator: dict[str, Any]) -> dict[str, Any]:
        """Record Available=Unknown on a resource that has no conditions yet."""
        if (rotator.get("status") or {}).get("conditions"):
            return rotator

        def mutate(body: dict[str, Any]) -> bool:
            status = body.setdefault("status", {})
            if status.get("conditions"):
                return False
            status["conditions"] = set_available_condition(
                [],
                STATUS_UNKNOWN,
                REASON_RECONCILING,
                "Starting reconciliation",
                observed_generation=body.get("metadata", {}).get("generation"),
            )
            return True

        return self._write(ctx, mutate)

    def report(self, ctx: ReconcileContext, state: WorkingState) -> dict[str, Any]:
        """Persist the status of a completed pass and announce it.

        Raises:
            StatusUpdateError: If the status cannot be written
        """

        def mutate(body: dict[str, Any]) -> bool:
            current = body.get("status") or {}
            desired = build_status(
                state,
                current.get("conditions") or [],
                body.get("metadata", {}).get("generation"),
            )
            if all(current.get(key) == value for key, value in desired.items()):
                return False
            body["status"] = {**current, **desired}
            return True

        body = self._write(ctx, mutate)

        metrics.provisioned_namespaces.labels(rotator=ctx.name).set(len(state.provisioned_namespaces))
        metrics.failed_namespaces.labels(rotator=ctx.name).set(len(state.failed_namespaces))
        ctx.log_info(
            "Status updated",
            event="status",
            reason="StatusUpdated",
            provisioned=len(state.provisioned_namespaces),
            failed=len(state.failed_namespaces),
        )
        emit_secrets_rotated(ctx.event_target(), len(state.provisioned_namespaces), len(state.failed_namespaces))
        return body
