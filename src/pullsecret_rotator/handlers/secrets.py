"""Lifecycle of the managed pull secrets in the selected namespaces."""

from __future__ import annotations

from typing import Any, Callable

from kubernetes.client.exceptions import ApiException

from .. import metrics
from ..constants import CONFLICT_RETRIES
from ..models import GeneratedSecret, RegistryCredential, WorkingState
from ..tracing import trace_span
from ..utils.context import ReconcileContext
from ..utils.errors import ReconcileError, SecretOperationError, sanitize_exception
from ..utils.secrets import build_secret, controller_of, is_owned_by
from .base import BaseHandler

CredentialProvider = Callable[[], RegistryCredential]


def failure_reason(secret_name: str, secret_type: str, reason: str) -> str:
    return f"{secret_name} ({secret_type}): {reason}"


def _owner_description(secret: dict[str, Any]) -> str:
    ref = controller_of(secret)
    if ref is None:
        return "is not managed by this SecretRotator"
    return f"is owned by {ref.get('kind')} {ref.get('name')}"


class SecretLifecycleManager(BaseHandler):
    """Creates, updates and deletes the managed secrets of one SecretRotator.

    A secret is only ever written or deleted when its controller owner
    reference points at the SecretRotator being reconciled. Failures are
    recorded per namespace in the working state and never end the pass;
    only credential errors propagate.
    """

    def __init__(self, store: Any) -> None:
        super().__init__()
        self.store = store

    def _count(self, operation: str, result: str) -> None:
        metrics.secret_operations_total.labels(operation=operation, result=result).inc()

    def delete_owned(self, rotator: dict[str, Any], namespace: str, name: str) -> bool:
        """Delete a secret if it exists and is owned by ``rotator``.

        Returns:
            True when the secret was deleted

        Raises:
            SecretOperationError: If the lookup or deletion fails
        """
        try:
            existing = self.store.read_secret(namespace, name)
        except ApiException as e:
            raise SecretOperationError(f"lookup failed, {sanitize_exception(e)}") from e
        if existing is None:
            return False
        if not is_owned_by(existing, rotator):
            self.logger.info(f"Skipping deletion of secret {namespace}/{name}, it {_owner_description(existing)}")
            return False
        try:
            self.store.delete_secret(namespace, name)
        except ApiException as e:
            if e.status == 404:
                return False
            raise SecretOperationError(f"deletion failed, {sanitize_exception(e)}") from e
        return True

    def delete_orphans(
        self,
        ctx: ReconcileContext,
        state: WorkingState,
        previous_provisioned: list[str],
        previous_managed: dict[str, list[str]],
    ) -> None:
        """Remove secrets that are no longer declared or no longer selected.

        For namespaces that dropped out of the selection every recorded and
        every currently declared secret is removed; for namespaces still
        selected only the recorded names that are no longer declared. Names
        whose deletion fails stay on record so the next pass retries them.
        """
        selected = set(state.namespaces)
        declared = state.secret_names
        types = {secret.name: secret.type for secret in state.generated_secrets}

        with trace_span("delete_orphans", kind=self.kind, attributes={"rotator": ctx.name}):
            for namespace in sorted(set(previous_provisioned) | set(previous_managed)):
                recorded = list(previous_managed.get(namespace) or [])
                if namespace in selected:
                    names = [name for name in recorded if name not in declared]
                else:
                    names = recorded + [name for name in declared if name not in recorded]

                for name in names:
                    try:
                        if self.delete_owned(ctx.body, namespace, name):
                            self._count("delete", "success")
                            ctx.log_info(
                                f"Deleted outdated secret {namespace}/{name}",
                                event="delete",
                                reason="OutdatedSecretDeleted",
                            )
                    except SecretOperationError as e:
                        self._count("delete", "error")
                        state.keep_managed(namespace, name)
                        state.record_failure(namespace, failure_reason(name, types.get(name, "outdated"), str(e)))
                        ctx.log_warning(f"Unable to delete outdated secret {namespace}/{name}: {e}")

    def reconcile_namespace(
        self,
        ctx: ReconcileContext,
        state: WorkingState,
        namespace: str,
        credentials: CredentialProvider,
    ) -> None:
        """Bring every declared secret of one namespace to the desired state.

        Raises:
            ReconcileError: If the registry credential cannot be obtained
        """
        with trace_span("reconcile_namespace", kind=self.kind, attributes={"namespace": namespace}):
            for secret in state.generated_secrets:
                try:
                    self.reconcile_secret(ctx, state, namespace, secret, credentials)
                except ReconcileError:
                    raise
                except Exception as e:
                    self._count("upsert", "error")
                    if state.was_managed(namespace, secret.name):
                        state.keep_managed(namespace, secret.name)
                    state.record_failure(namespace, failure_reason(secret.name, secret.type, sanitize_exception(e)))
                    ctx.log_warning(
                        f"Unable to reconcile secret {namespace}/{secret.name}: {sanitize_exception(e)}",
                        reason="SecretFailed",
                    )
                else:
                    self._count("upsert", "success")
                    state.record_managed(namespace, secret.name)

    def _check_owner(self, ctx: ReconcileContext, existing: dict[str, Any] | None) -> None:
        if existing is not None and not is_owned_by(existing, ctx.body):
            raise SecretOperationError(f"secret already exists and {_owner_description(existing)}")

    def reconcile_secret(
        self,
        ctx: ReconcileContext,
        state: WorkingState,
        namespace: str,
        secret: GeneratedSecret,
        credentials: CredentialProvider,
    ) -> None:
        """Create or replace one managed secret.

        Replace falls back to create when the secret vanished, and a conflict
        re-reads the secret and retries a bounded number of times.

        Raises:
            SecretOperationError: On lookup errors, foreign ownership or
                persistent conflicts
            ReconcileError: If the registry credential cannot be obtained
        """
        try:
            existing = self.store.read_secret(namespace, secret.name)
        except ApiException as e:
            raise SecretOperationError(f"lookup failed, {sanitize_exception(e)}") from e
        self._check_owner(ctx, existing)

        credential = credentials()
        for _ in range(CONFLICT_RETRIES + 1):
            body = build_secret(
                secret.name,
                namespace,
                secret.type,
                state.registry_host,
                credential,
                ctx.body,
                labels=state.secret_labels,
                annotations=state.secret_annotations,
                existing=existing,
            )
            try:
                if existing is not None and existing.get("type") not in (None, body["type"]):
                    # The type of a secret is immutable
                    self.store.delete_secret(namespace, secret.name)
                    ctx.log_info(
                        f"Deleted secret {namespace}/{secret.name} to change its type to {body['type']}",
                        event="delete",
                        reason="SecretTypeChanged",
                    )
                    existing = None
                    continue
                if existing is None:
                    self.store.create_secret(namespace, body)
                    ctx.log_info(f"Created secret {namespace}/{secret.name}", event="create", reason="SecretCreated")
                else:
                    self.store.replace_secret(namespace, secret.name, body)
                    ctx.log_info(f"Updated secret {namespace}/{secret.name}", event="update", reason="SecretUpdated")
                return
            except ApiException as e:
                if e.status == 404 and existing is not None:
                    existing = None
                    continue
                if e.status == 409:
                    existing = self.store.read_secret(namespace, secret.name)
                    self._check_owner(ctx, existing)
                    continue
                raise SecretOperationError(f"write failed, {sanitize_exception(e)}") from e

        raise SecretOperationError(f"secret kept conflicting after {CONFLICT_RETRIES} retries")
