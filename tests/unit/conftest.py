"""Shared fixtures for unit tests."""

from __future__ import annotations

import copy
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.exceptions import ApiException

from pullsecret_rotator.constants import ANNOTATION_NAMESPACE_TRIGGER, FINALIZER
from pullsecret_rotator.models import CredentialProof, RegistryCredential, SignedRequest


def api_error(status: int) -> ApiException:
    return ApiException(status=status, reason={404: "Not Found", 409: "Conflict"}.get(status, "Error"))


class FakeStore:
    """In-memory stand-in for KubernetesStore.

    Namespace queries only understand ``key=value`` terms, which is all the
    tests use. Failures can be injected per (operation, namespace) key.
    """

    def __init__(self) -> None:
        self.rotators: dict[str, dict[str, Any]] = {}
        self.namespaces: dict[str, dict[str, str]] = {}
        self.secrets: dict[tuple[str, str], dict[str, Any]] = {}
        self.pods: dict[tuple[str, str], dict[str, Any]] = {}
        self.service_accounts: dict[tuple[str, str], dict[str, Any]] = {}
        self.failures: dict[tuple[str, str], ApiException] = {}
        self.calls: list[tuple[str, ...]] = []
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _maybe_fail(self, operation: str, key: str = "") -> None:
        error = self.failures.get((operation, key))
        if error is not None:
            raise error

    # SecretRotator

    def add_rotator(self, body: dict[str, Any]) -> None:
        body = copy.deepcopy(body)
        body["metadata"]["resourceVersion"] = self._next_version()
        self.rotators[body["metadata"]["name"]] = body

    def get_rotator(self, name: str) -> dict[str, Any]:
        self.calls.append(("get_rotator", name))
        self._maybe_fail("get_rotator", name)
        if name not in self.rotators:
            raise api_error(404)
        return copy.deepcopy(self.rotators[name])

    def list_rotators(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(body) for body in self.rotators.values()]

    def _write_rotator(self, operation: str, name: str, mutate) -> dict[str, Any]:
        self.calls.append((operation, name))
        self._maybe_fail(operation, name)
        body = self.get_rotator(name)
        if mutate(body) is False:
            return body
        body["metadata"]["resourceVersion"] = self._next_version()
        self.rotators[name] = copy.deepcopy(body)
        return body

    def update_rotator(self, name: str, mutate) -> dict[str, Any]:
        return self._write_rotator("update_rotator", name, mutate)

    def update_rotator_status(self, name: str, mutate) -> dict[str, Any]:
        return self._write_rotator("update_rotator_status", name, mutate)

    def touch_rotator(self, name: str, value: str) -> None:
        self.calls.append(("touch_rotator", name))
        if name not in self.rotators:
            raise api_error(404)
        annotations = self.rotators[name]["metadata"].setdefault("annotations", {})
        annotations[ANNOTATION_NAMESPACE_TRIGGER] = value

    # Namespaces

    def list_namespaces(self, label_selector: str = "") -> list[dict[str, Any]]:
        self.calls.append(("list_namespaces", label_selector))
        self._maybe_fail("list_namespaces")
        terms = [term.split("=", 1) for term in label_selector.split(",") if term]
        return [
            {"metadata": {"name": name, "labels": dict(labels)}}
            for name, labels in self.namespaces.items()
            if all(labels.get(key) == value for key, value in terms)
        ]

    # Secrets

    def read_secret(self, namespace: str, name: str) -> dict[str, Any] | None:
        self._maybe_fail("read_secret", namespace)
        secret = self.secrets.get((namespace, name))
        return copy.deepcopy(secret) if secret is not None else None

    def create_secret(self, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        name = body["metadata"]["name"]
        self.calls.append(("create_secret", namespace, name))
        self._maybe_fail("create_secret", namespace)
        if (namespace, name) in self.secrets:
            raise api_error(409)
        body = copy.deepcopy(body)
        body["metadata"]["resourceVersion"] = self._next_version()
        self.secrets[(namespace, name)] = body
        return copy.deepcopy(body)

    def replace_secret(self, namespace: str, name: str, body: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("replace_secret", namespace, name))
        self._maybe_fail("replace_secret", namespace)
        current = self.secrets.get((namespace, name))
        if current is None:
            raise api_error(404)
        expected = body["metadata"].get("resourceVersion")
        if expected and expected != current["metadata"].get("resourceVersion"):
            raise api_error(409)
        body = copy.deepcopy(body)
        body["metadata"]["resourceVersion"] = self._next_version()
        self.secrets[(namespace, name)] = body
        return copy.deepcopy(body)

    def delete_secret(self, namespace: str, name: str) -> None:
        self.calls.append(("delete_secret", namespace, name))
        self._maybe_fail("delete_secret", namespace)
        if (namespace, name) not in self.secrets:
            raise api_error(404)
        del self.secrets[(namespace, name)]

    # Identity

    def read_pod(self, namespace: str, name: str) -> dict[str, Any]:
        self.calls.append(("read_pod", namespace, name))
        if (namespace, name) not in self.pods:
            raise api_error(404)
        return copy.deepcopy(self.pods[(namespace, name)])

    def read_service_account(self, namespace: str, name: str) -> dict[str, Any]:
        if (namespace, name) not in self.service_accounts:
            raise api_error(404)
        return copy.deepcopy(self.service_accounts[(namespace, name)])

    def create_service_account_token(self, namespace: str, name: str, audience: str, expiration_seconds: int) -> str:
        self.calls.append(("create_service_account_token", namespace, name, audience, expiration_seconds))
        return "web-identity-jwt"


def make_rotator(
    name: str = "example",
    spec: dict[str, Any] | None = None,
    finalizers: list[str] | None = None,
    status: dict[str, Any] | None = None,
    deleting: bool = False,
) -> dict[str, Any]:
    """Build a SecretRotator body."""
    if spec is None:
        spec = {
            "namespaceSelector": {"matchLabels": {"team": "a"}},
            "artifactoryUrl": "https://registry.example.com",
            "generatedSecrets": [{"secretName": "reg-cred", "secretType": "generic"}],
            "serviceAccount": {"name": "rotator", "namespace": "operators"},
        }
    metadata: dict[str, Any] = {
        "name": name,
        "uid": f"uid-{name}",
        "generation": 1,
        "finalizers": [FINALIZER] if finalizers is None else finalizers,
    }
    if deleting:
        metadata["deletionTimestamp"] = "2026-01-01T00:00:00Z"
    body: dict[str, Any] = {
        "apiVersion": "rotator.cloud37.dev/v1alpha1",
        "kind": "SecretRotator",
        "metadata": metadata,
        "spec": spec,
    }
    if status is not None:
        body["status"] = status
    return body


def make_credential(ttl: float = 10800.0) -> RegistryCredential:
    return RegistryCredential(username="svc-user", token="s3cr3t-token", ttl_seconds=ttl)


def make_proof(max_validity: int = 10800) -> CredentialProof:
    return CredentialProof(
        request=SignedRequest(
            method="GET",
            url="https://sts.amazonaws.com/?Action=GetCallerIdentity&Version=2011-06-15",
            headers={"Authorization": "AWS4-HMAC-SHA256 Credential=...", "X-Amz-Date": "20260101T000000Z"},
        ),
        max_validity_seconds=max_validity,
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture(autouse=True)
def kopf_event():
    """Capture events instead of posting them through kopf."""
    with patch("pullsecret_rotator.utils.events.kopf.event") as mock_event:
        yield mock_event


@pytest.fixture
def exchanger() -> MagicMock:
    mock = MagicMock()
    mock.exchange.return_value = make_proof()
    return mock


@pytest.fixture
def registry() -> MagicMock:
    mock = MagicMock()
    mock.request_token.return_value = make_credential()
    return mock
