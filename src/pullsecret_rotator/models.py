"""Models for SecretRotator reconciliation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .utils.selectors import LabelSelector


@dataclass(frozen=True)
class GeneratedSecret:
    """A secret to produce in every selected namespace."""

    name: str
    type: str


@dataclass(frozen=True)
class ServiceAccountRef:
    """Service account whose federated identity is exchanged for credentials."""

    name: str
    namespace: str


@dataclass(frozen=True)
class SecurityOptions:
    """TLS options for the registry token request."""

    enabled: bool = False
    insecure_skip_verify: bool = False
    certificate_secret_name: str | None = None
    secret_namespace: str | None = None

    @classmethod
    def from_spec(cls, spec: dict[str, Any] | None) -> "SecurityOptions":
        spec = spec or {}
        return cls(
            enabled=bool(spec.get("enabled", False)),
            insecure_skip_verify=bool(spec.get("insecureSkipVerify", False)),
            certificate_secret_name=spec.get("certificateSecretName") or None,
            secret_namespace=spec.get("secretNamespace") or None,
        )


@dataclass(frozen=True)
class SignedRequest:
    """A SigV4-signed GetCallerIdentity request proving the workload identity."""

    method: str
    url: str
    headers: dict[str, str]


@dataclass(frozen=True)
class CredentialProof:
    """Signed proof of identity plus how long a token minted from it may live."""

    request: SignedRequest
    max_validity_seconds: int


@dataclass(frozen=True)
class RegistryCredential:
    """Short-lived registry username/token pair."""

    username: str
    token: str
    ttl_seconds: float

    def __repr__(self) -> str:
        return f"RegistryCredential(username={self.username!r}, token='***', ttl_seconds={self.ttl_seconds})"


@dataclass
class WorkingState:
    """State derived and accumulated by a single reconciliation pass."""

    selector: LabelSelector
    registry_host: str
    generated_secrets: list[GeneratedSecret]
    service_account: ServiceAccountRef
    security: SecurityOptions = field(default_factory=SecurityOptions)
    refresh_interval: float | None = None
    secret_labels: dict[str, str] = field(default_factory=dict)
    secret_annotations: dict[str, str] = field(default_factory=dict)
    namespaces: list[str] = field(default_factory=list)
    failed_namespaces: dict[str, list[str]] = field(default_factory=dict)
    provisioned_namespaces: list[str] = field(default_factory=list)
    secret_managed_by_namespaces: dict[str, list[str]] = field(default_factory=dict)
    credential: RegistryCredential | None = None
    previous_managed: dict[str, list[str]] = field(default_factory=dict)

    @property
    def secret_names(self) -> list[str]:
        return [secret.name for secret in self.generated_secrets]

    def record_failure(self, namespace: str, reason: str) -> None:
        self.failed_namespaces.setdefault(namespace, []).append(reason)

    def keep_managed(self, namespace: str, secret_name: str) -> None:
        """Keep a secret on record without marking its namespace provisioned."""
        managed = self.secret_managed_by_namespaces.setdefault(namespace, [])
        if secret_name not in managed:
            managed.append(secret_name)

    def was_managed(self, namespace: str, secret_name: str) -> bool:
        return secret_name in (self.previous_managed.get(namespace) or [])

    def record_managed(self, namespace: str, secret_name: str) -> None:
        self.keep_managed(namespace, secret_name)
        if namespace not in self.provisioned_namespaces:
            self.provisioned_namespaces.append(namespace)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a pass: when to run again, or ``None`` to stop."""

    requeue_after: float | None = None
    message: str = ""
