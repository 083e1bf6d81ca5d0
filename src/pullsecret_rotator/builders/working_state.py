"""Builder turning a SecretRotator spec into the working state of a pass."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any

from ..constants import ENV_POD_NAME, ENV_POD_NAMESPACE, SECRET_TYPE_DOCKER, SECRET_TYPES
from ..models import GeneratedSecret, SecurityOptions, ServiceAccountRef, WorkingState
from ..utils.durations import parse_duration
from ..utils.errors import ReconcileError, ValidationError
from ..utils.selectors import LabelSelector

logger = logging.getLogger(__name__)


def normalize_registry_host(url: Any) -> str:
    """Strip a leading scheme from the registry URL.

    ``https://`` is only stripped from values longer than 8 characters and
    ``http://`` from values longer than 7, so a bare scheme is kept as is.

    Raises:
        ValidationError: If no registry URL is declared
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("artifactoryUrl is required")
    host = url.strip()
    if host.startswith("https://") and len(host) > 8:
        host = host[len("https://"):]
    elif host.startswith("http://") and len(host) > 7:
        host = host[len("http://"):]
    return host


def create_generated_secrets_from_spec(spec: dict[str, Any]) -> list[GeneratedSecret]:
    """Collect the generated secret descriptors of a spec.

    The deprecated ``secretName`` field is merged into the list as a docker
    secret unless a descriptor of that name is already declared.

    Raises:
        ValidationError: On an empty list, a missing name, an unknown type or
            a duplicate name
    """
    entries = spec.get("generatedSecrets") or []
    if not isinstance(entries, list):
        raise ValidationError("generatedSecrets must be a list")

    descriptors: list[GeneratedSecret] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValidationError(f"generatedSecrets[{index}] must be an object")
        name = entry.get("secretName")
        if not isinstance(name, str) or not name:
            raise ValidationError(f"generatedSecrets[{index}].secretName is required")
        secret_type = entry.get("secretType") or SECRET_TYPE_DOCKER
        if secret_type not in SECRET_TYPES:
            raise ValidationError(
                f"generatedSecrets[{index}].secretType {secret_type!r} is invalid, must be one of {', '.join(SECRET_TYPES)}"
            )
        if name in seen:
            raise ValidationError(f"Duplicate secret name {name!r} in generatedSecrets")
        seen.add(name)
        descriptors.append(GeneratedSecret(name=name, type=secret_type))

    legacy_name = spec.get("secretName")
    if legacy_name is not None and not isinstance(legacy_name, str):
        raise ValidationError("secretName must be a string")
    if legacy_name and legacy_name not in seen:
        descriptors.append(GeneratedSecret(name=legacy_name, type=SECRET_TYPE_DOCKER))

    if not descriptors:
        raise ValidationError("At least one secret must be declared in generatedSecrets or secretName")
    return descriptors


def _string_map(value: Any, field_name: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
        raise ValidationError(f"{field_name} must be a map of strings")
    return dict(value)


class SpecValidator:
    """Validates SecretRotator specs and resolves the acting identity.

    The operator's own service account is discovered once from its pod and
    cached for the lifetime of the process.
    """

    def __init__(self, store: Any) -> None:
        self.store = store
        self._self_identity: ServiceAccountRef | None = None
        self._lock = threading.Lock()

    def discover_self_identity(self) -> ServiceAccountRef:
        """Find the service account the operator pod runs as.

        Raises:
            ReconcileError: If the pod cannot be identified or read
        """
        with self._lock:
            if self._self_identity is not None:
                return self._self_identity

            pod_name = os.getenv(ENV_POD_NAME)
            pod_namespace = os.getenv(ENV_POD_NAMESPACE)
            if not pod_name or not pod_namespace:
                raise ReconcileError(
                    f"Unable to discover the operator service account: {ENV_POD_NAME} and {ENV_POD_NAMESPACE} must be set"
                )
            try:
                pod = self.store.read_pod(pod_namespace, pod_name)
            except Exception as e:
                raise ReconcileError(f"Unable to read operator pod {pod_namespace}/{pod_name}", cause=e) from e

            account = (pod.get("spec") or {}).get("serviceAccountName") or "default"
            self._self_identity = ServiceAccountRef(name=account, namespace=pod_namespace)
            logger.info(f"Discovered operator service account {pod_namespace}/{account}")
            return self._self_identity

    def resolve_service_account(self, spec: dict[str, Any]) -> ServiceAccountRef:
        """Resolve the declared service account, defaulting per field to the operator's own."""
        declared = spec.get("serviceAccount") or {}
        name = declared.get("name")
        namespace = declared.get("namespace")
        if name and namespace:
            return ServiceAccountRef(name=name, namespace=namespace)
        own = self.discover_self_identity()
        return ServiceAccountRef(name=name or own.name, namespace=namespace or own.namespace)

    def validate(self, rotator: dict[str, Any]) -> WorkingState:
        """Build the working state of a pass from a SecretRotator body.

        Args:
            rotator: SecretRotator body

        Returns:
            A fresh WorkingState

        Raises:
            ValidationError: If the spec is invalid
            ReconcileError: If the acting identity cannot be resolved
        """
        spec = rotator.get("spec") or {}

        generated_secrets = create_generated_secrets_from_spec(spec)
        selector = LabelSelector.from_spec(spec.get("namespaceSelector"))
        registry_host = normalize_registry_host(spec.get("artifactoryUrl"))

        refresh_interval = None
        if spec.get("refreshInterval") not in (None, ""):
            refresh_interval = parse_duration(spec["refreshInterval"])

        metadata = spec.get("secretMetadata") or {}

        return WorkingState(
            selector=selector,
            registry_host=registry_host,
            generated_secrets=generated_secrets,
            service_account=self.resolve_service_account(spec),
            security=SecurityOptions.from_spec(spec.get("security")),
            refresh_interval=refresh_interval,
            secret_labels=_string_map(metadata.get("labels"), "secretMetadata.labels"),
            secret_annotations=_string_map(metadata.get("annotations"), "secretMetadata.annotations"),
        )
