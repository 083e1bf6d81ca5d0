"""Finalizer lifecycle of a SecretRotator.

The lifecycle is an explicit transition table:

=======================  ==================  =====================================
deletion timestamp       finalizer           action
=======================  ==================  =====================================
absent                   absent              attach finalizer, end the pass
absent                   present             none, the pass continues
present                  present             mark Degraded/Finalizing, remove it
present                  absent              none, the pass ends
=======================  ==================  =====================================

Managed secrets carry owner references, so garbage collection removes them and
finalization has no cleanup of its own.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from kubernetes.client.exceptions import ApiException

from ..constants import FINALIZER
from ..utils.conditions import STATUS_TRUE, STATUS_UNKNOWN, set_degraded_condition
from ..utils.context import ReconcileContext
from ..utils.errors import StatusUpdateError
from ..utils.events import emit_deleting
from .base import BaseHandler

REASON_FINALIZING = "Finalizing"


class FinalizerState(enum.Enum):
    UNSET = "Unset"
    ACTIVE = "Active"
    TERMINATING = "Terminating"
    FINALIZED = "Finalized"


@dataclass(frozen=True)
class FinalizerTransition:
    """Resulting state, the latest body and whether the pass goes on."""

    state: FinalizerState
    body: dict[str, Any]
    proceed: bool


def observe_state(rotator: dict[str, Any]) -> FinalizerState:
    """Classify a SecretRotator body into its lifecycle state."""
    metadata = rotator.get("metadata", {})
    has_finalizer = FINALIZER in (metadata.get("finalizers") or [])
    if metadata.get("deletionTimestamp"):
        return FinalizerState.TERMINATING if has_finalizer else FinalizerState.FINALIZED
    return FinalizerState.ACTIVE if has_finalizer else FinalizerState.UNSET


def _add_finalizer(body: dict[str, Any]) -> bool:
    finalizers = body.setdefault("metadata", {}).setdefault("finalizers", [])
    if FINALIZER in finalizers:
        return False
    finalizers.append(FINALIZER)
    return True


def _remove_finalizer(body: dict[str, Any]) -> bool:
    finalizers = body.setdefault("metadata", {}).get("finalizers") or []
    if FINALIZER not in finalizers:
        return False
    body["metadata"]["finalizers"] = [f for f in finalizers if f != FINALIZER]
    return True


def _degraded(status: str, message: str):
    def mutate(body: dict[str, Any]) -> bool:
        current = body.setdefault("status", {})
        conditions = current.get("conditions") or []
        current["conditions"] = set_degraded_condition(
            conditions,
            status,
            REASON_FINALIZING,
            message,
            observed_generation=body.get("metadata", {}).get("generation"),
        )
        return True

    return mutate


class FinalizerStateMachine(BaseHandler):
    """Drives a SecretRotator through Unset, Active, Terminating and Finalized."""

    def __init__(self, store: Any) -> None:
        super().__init__()
        self.store = store

    def advance(self, ctx: ReconcileContext, rotator: dict[str, Any]) -> FinalizerTransition:
        """Apply the transition for the observed state.

        Every write goes through the store's optimistic read-modify-write, so
        an interrupted transition is completed by the next pass.

        Raises:
            StatusUpdateError: If a write fails for any reason other than the
                resource disappearing
        """
        state = observe_state(rotator)

        if state is FinalizerState.ACTIVE:
            return FinalizerTransition(FinalizerState.ACTIVE, rotator, proceed=True)
        if state is FinalizerState.FINALIZED:
            return FinalizerTransition(FinalizerState.FINALIZED, rotator, proceed=False)

        try:
            if state is FinalizerState.UNSET:
                body = self.store.update_rotator(ctx.name, _add_finalizer)
                ctx.bind(body)
                ctx.log_info("Finalizer attached", reason="FinalizerAdded")
                return FinalizerTransition(FinalizerState.ACTIVE, body, proceed=False)
            return FinalizerTransition(FinalizerState.FINALIZED, self._finalize(ctx), proceed=False)
        except ApiException as e:
            if e.status == 404:
                ctx.log_info("Resource disappeared during finalizer handling", reason="NotFound")
                return FinalizerTransition(FinalizerState.FINALIZED, rotator, proceed=False)
            raise StatusUpdateError(f"Unable to update finalizer of {ctx.name}", cause=e) from e

    def _finalize(self, ctx: ReconcileContext) -> dict[str, Any]:
        ctx.log_info("Finalizing", reason=REASON_FINALIZING)
        body = self.store.update_rotator_status(
            ctx.name, _degraded(STATUS_UNKNOWN, "Performing finalizer operations before deletion")
        )
        ctx.bind(body)
        emit_deleting(ctx.event_target(), ctx.name)

        body = self.store.update_rotator_status(
            ctx.name, _degraded(STATUS_TRUE, "Finalizer operations completed, the resource can be deleted")
        )
        body = self.store.update_rotator(ctx.name, _remove_finalizer)
        ctx.bind(body)
        ctx.log_info("Finalizer removed", reason="FinalizerRemoved")
        return body
