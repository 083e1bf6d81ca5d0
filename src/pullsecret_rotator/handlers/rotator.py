"""SecretRotator reconciliation pass."""

from __future__ import annotations

from typing import Any

from kubernetes.client.exceptions import ApiException

from .. import metrics
from ..builders.working_state import SpecValidator
from ..constants import DEFAULT_MAX_SESSION_SECONDS, TTL_REFRESH_RATIO
from ..models import ReconcileResult, RegistryCredential, WorkingState
from ..services.aws.identity import CredentialExchanger
from ..services.registry.client import RegistryTokenClient
from ..tracing import add_span_attribute, trace_span
from ..utils.certificates import stage_certificates
from ..utils.context import ReconcileContext
from ..utils.errors import ReconcileError, ResourceNotFoundError
from ..utils.events import emit_token_ttl_misconfigured
from .base import BaseHandler
from .finalizer import FinalizerState, FinalizerStateMachine
from .namespaces import NamespaceSelector
from .secrets import SecretLifecycleManager
from .status import StatusReporter


def next_run_in(state: WorkingState) -> float:
    """Seconds until the next scheduled pass.

    A declared refresh interval wins; otherwise the pass is rescheduled at
    three quarters of the credential's lifetime. When no credential was
    needed the default session length stands in for it.
    """
    if state.refresh_interval:
        return state.refresh_interval
    ttl = state.credential.ttl_seconds if state.credential is not None else DEFAULT_MAX_SESSION_SECONDS
    return ttl * TTL_REFRESH_RATIO


class Reconciler(BaseHandler):
    """Composes one pass: finalizer, validation, selection, secrets, status."""

    def __init__(
        self,
        store: Any,
        validator: SpecValidator | None = None,
        exchanger: CredentialExchanger | None = None,
        registry: RegistryTokenClient | None = None,
    ) -> None:
        super().__init__()
        self.store = store
        self.validator = validator or SpecValidator(store)
        self.exchanger = exchanger or CredentialExchanger(store)
        self.registry = registry or RegistryTokenClient()
        self.finalizers = FinalizerStateMachine(store)
        self.namespaces = NamespaceSelector(store)
        self.secrets = SecretLifecycleManager(store)
        self.status = StatusReporter(store)

    def reconcile(self, name: str) -> ReconcileResult:
        """Run one pass for the named SecretRotator.

        Returns:
            When to run again; ``requeue_after=None`` stops the resource
        """
        ctx = ReconcileContext(name=name)
        with trace_span("reconcile", kind=self.kind, attributes={"rotator": name, "correlation_id": ctx.correlation_id}):
            return self.reconcile_with_metrics(ctx, lambda: self._reconcile(ctx))

    def _fetch(self, name: str) -> dict[str, Any]:
        try:
            return self.store.get_rotator(name)
        except ApiException as e:
            if e.status == 404:
                raise ResourceNotFoundError(f"{self.kind} {name} not found", cause=e) from e
            raise ReconcileError(f"Unable to get {self.kind} {name}", cause=e) from e

    def _reconcile(self, ctx: ReconcileContext) -> ReconcileResult:
        rotator = self._fetch(ctx.name)
        ctx.bind(rotator)
        ctx.log_info("Reconciling", event="reconcile", reason="Reconciling")

        rotator = self.status.mark_reconciling(ctx, rotator)

        transition = self.finalizers.advance(ctx, rotator)
        if transition.state is FinalizerState.FINALIZED:
            return ReconcileResult(requeue_after=None, message="finalized")
        if not transition.proceed:
            return ReconcileResult(requeue_after=0.0, message="finalizer attached")
        rotator = transition.body

        with trace_span("validate", kind=self.kind):
            state = self.validator.validate(rotator)

        with trace_span("select_namespaces", kind=self.kind):
            state.namespaces = self.namespaces.select(state.selector)
            add_span_attribute("namespaces", len(state.namespaces))

        previous = rotator.get("status") or {}
        state.previous_managed = previous.get("secretManagedByNamespaces") or {}
        self.secrets.delete_orphans(
            ctx,
            state,
            previous.get("provisionedNamespaces") or [],
            state.previous_managed,
        )

        for namespace in state.namespaces:
            self.secrets.reconcile_namespace(ctx, state, namespace, lambda: self.fetch_credential(ctx, state))

        with trace_span("report_status", kind=self.kind):
            self.status.report(ctx, state)

        requeue_after = next_run_in(state)
        ctx.log_info(
            f"Reconciled, next run in {requeue_after:.0f}s",
            event="reconcile",
            reason="Reconciled",
            provisioned=len(state.provisioned_namespaces),
            failed=len(state.failed_namespaces),
        )
        return ReconcileResult(requeue_after=requeue_after, message="reconciled")

    def fetch_credential(self, ctx: ReconcileContext, state: WorkingState) -> RegistryCredential:
        """Return the registry credential of this pass, obtaining it on first use.

        Raises:
            ReconcileError: If certificates, the identity exchange or the
                token request fail
        """
        if state.credential is not None:
            return state.credential

        with trace_span("exchange_credential", kind=self.kind):
            security = state.security
            if security.enabled and not security.insecure_skip_verify and security.certificate_secret_name:
                stage_certificates(
                    self.store,
                    ctx.name,
                    security.certificate_secret_name,
                    security.secret_namespace or state.service_account.namespace,
                )

            proof = self.exchanger.exchange(state.service_account)
            credential = self.registry.request_token(state.registry_host, proof, security, ctx.name)

        metrics.token_ttl_seconds.labels(rotator=ctx.name).set(credential.ttl_seconds)
        if state.refresh_interval and credential.ttl_seconds < state.refresh_interval:
            ctx.log_warning(
                f"Token TTL {credential.ttl_seconds:.0f}s is shorter than the refresh interval "
                f"{state.refresh_interval:.0f}s, tokens will expire before they are rotated",
                reason="TokenTTLMisconfigured",
            )
            emit_token_ttl_misconfigured(ctx.event_target(), credential.ttl_seconds, state.refresh_interval)

        state.credential = credential
        return credential
