"""Kubernetes object store used by the reconciliation engine."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from ... import metrics
from ...constants import (
    ANNOTATION_NAMESPACE_TRIGGER,
    API_GROUP,
    API_VERSION,
    CONFLICT_RETRIES,
    FIELD_MANAGER,
    PLURAL_SECRET_ROTATORS,
)
from ...utils.rate_limit import rate_limit_k8s

logger = logging.getLogger(__name__)

# A mutation returns False when the object already has the desired shape
Mutation = Callable[[dict[str, Any]], "bool | None"]


def load_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def is_not_found(e: BaseException) -> bool:
    return isinstance(e, ApiException) and e.status == 404


def is_conflict(e: BaseException) -> bool:
    return isinstance(e, ApiException) and e.status == 409


class KubernetesStore:
    """Thin adapter over the Kubernetes API returning plain dict objects.

    Every call is rate limited and recorded in the API call metrics. Objects
    are returned in their API (camelCase) form so that SecretRotator bodies,
    secrets and namespaces are handled the same way throughout the engine.
    """

    def __init__(
        self,
        core_api: client.CoreV1Api | None = None,
        custom_api: client.CustomObjectsApi | None = None,
    ) -> None:
        if core_api is None or custom_api is None:
            load_config()
        self.core_api = core_api or client.CoreV1Api()
        self.custom_api = custom_api or client.CustomObjectsApi()
        self._serializer = client.ApiClient()

    def _to_dict(self, obj: Any) -> Any:
        if obj is None or isinstance(obj, dict):
            return obj
        return self._serializer.sanitize_for_serialization(obj)

    def _call(self, operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        start_time = time.time()
        try:
            result = rate_limit_k8s(func)(*args, **kwargs)
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
            return result
        except Exception:
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
            raise
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)

    # SecretRotator

    def get_rotator(self, name: str) -> dict[str, Any]:
        return self._call(
            "get_rotator",
            self.custom_api.get_cluster_custom_object,
            group=API_GROUP,
            version=API_VERSION,
            plural=PLURAL_SECRET_ROTATORS,
            name=name,
        )

    def list_rotators(self) -> list[dict[str, Any]]:
        result = self._call(
            "list_rotators",
            self.custom_api.list_cluster_custom_object,
            group=API_GROUP,
            version=API_VERSION,
            plural=PLURAL_SECRET_ROTATORS,
        )
        return list(result.get("items", []))

    def _read_modify_write(
        self,
        name: str,
        mutate: Mutation,
        write: Callable[..., Any],
        operation: str,
    ) -> dict[str, Any]:
        attempt = 0
        while True:
            body = self.get_rotator(name)
            if mutate(body) is False:
                return body
            try:
                return self._call(
                    operation,
                    write,
                    group=API_GROUP,
                    version=API_VERSION,
                    plural=PLURAL_SECRET_ROTATORS,
                    name=name,
                    body=body,
                    field_manager=FIELD_MANAGER,
                )
            except ApiException as e:
                if not is_conflict(e) or attempt >= CONFLICT_RETRIES:
                    raise
                attempt += 1
                logger.debug(f"Conflict writing SecretRotator {name}, retrying ({attempt}/{CONFLICT_RETRIES})")

    def update_rotator(self, name: str, mutate: Mutation) -> dict[str, Any]:
        """Apply ``mutate`` to the latest SecretRotator and replace it.

        The object is re-fetched and the mutation re-applied on a 409 conflict.
        """
        return self._read_modify_write(name, mutate, self.custom_api.replace_cluster_custom_object, "update_rotator")

    def update_rotator_status(self, name: str, mutate: Mutation) -> dict[str, Any]:
        """Apply ``mutate`` to the latest SecretRotator and replace its status."""
        return self._read_modify_write(
            name, mutate, self.custom_api.replace_cluster_custom_object_status, "update_rotator_status"
        )

    def touch_rotator(self, name: str, value: str) -> None:
        """Set the namespace trigger annotation so the resource is reconciled again."""
        self._call(
            "touch_rotator",
            self.custom_api.patch_cluster_custom_object,
            group=API_GROUP,
            version=API_VERSION,
            plural=PLURAL_SECRET_ROTATORS,
            name=name,
            body={"metadata": {"annotations": {ANNOTATION_NAMESPACE_TRIGGER: value}}},
        )

    # Namespaces

    def list_namespaces(self, label_selector: str = "") -> list[dict[str, Any]]:
        result = self._call("list_namespaces", self.core_api.list_namespace, label_selector=label_selector)
        return [self._to_dict(item) for item in result.items]

    # Secrets

    def read_secret(self, namespace: str, name: str) -> dict[str, Any] | None:
        """Read a secret, returning None when it does not exist."""
        try:
            secret = self._call("read_secret", self.core_api.read_namespaced_secret, name=name, namespace=namespace)
        except ApiException as e:
            if is_not_found(e):
                return None
            raise
        return self._to_dict(secret)

    def create_secret(self, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        secret = self._call(
            "create_secret",
            self.core_api.create_namespaced_secret,
            namespace=namespace,
            body=body,
            field_manager=FIELD_MANAGER,
        )
        return self._to_dict(secret)

    def replace_secret(self, namespace: str, name: str, body: dict[str, Any]) -> dict[str, Any]:
        secret = self._call(
            "replace_secret",
            self.core_api.replace_namespaced_secret,
            name=name,
            namespace=namespace,
            body=body,
            field_manager=FIELD_MANAGER,
        )
        return self._to_dict(secret)

    def delete_secret(self, namespace: str, name: str) -> None:
        self._call("delete_secret", self.core_api.delete_namespaced_secret, name=name, namespace=namespace)

    # Identity

    def read_pod(self, namespace: str, name: str) -> dict[str, Any]:
        return self._to_dict(self._call("read_pod", self.core_api.read_namespaced_pod, name=name, namespace=namespace))

    def read_service_account(self, namespace: str, name: str) -> dict[str, Any]:
        return self._to_dict(
            self._call(
                "read_service_account",
                self.core_api.read_namespaced_service_account,
                name=name,
                namespace=namespace,
            )
        )

    def create_service_account_token(
        self,
        namespace: str,
        name: str,
        audience: str,
        expiration_seconds: int,
    ) -> str:
        """Request a bound token for a service account.

        Returns:
            The issued JWT
        """
        request = client.AuthenticationV1TokenRequest(
            spec=client.V1TokenRequestSpec(
                audiences=[audience],
                expiration_seconds=expiration_seconds,
            ),
        )
        result = self._call(
            "create_service_account_token",
            self.core_api.create_namespaced_service_account_token,
            name=name,
            namespace=namespace,
            body=request,
        )
        return result.status.token
