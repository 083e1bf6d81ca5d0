"""Utilities for building and owning the managed pull secrets."""

from __future__ import annotations

import base64
import json
from typing import Any

from ..constants import (
    API_GROUP_VERSION,
    DOCKER_CONFIG_KEY,
    GENERIC_TOKEN_KEY,
    GENERIC_USER_KEY,
    K8S_SECRET_TYPE_DOCKER,
    K8S_SECRET_TYPE_OPAQUE,
    KIND_SECRET_ROTATOR,
    SECRET_TYPE_DOCKER,
)
from ..models import RegistryCredential


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("utf-8")


def decode_secret_value(value: str | bytes) -> bytes:
    """Decode one entry of a secret's ``data`` map."""
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return base64.b64decode(value)


def owner_reference(rotator: dict[str, Any]) -> dict[str, Any]:
    """Build the controller owner reference pointing at a SecretRotator.

    Args:
        rotator: SecretRotator body

    Returns:
        Owner reference in API (camelCase) form
    """
    metadata = rotator.get("metadata", {})
    return {
        "apiVersion": rotator.get("apiVersion", API_GROUP_VERSION),
        "kind": rotator.get("kind", KIND_SECRET_ROTATOR),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        "controller": True,
        "blockOwnerDeletion": True,
    }


def controller_of(obj: dict[str, Any]) -> dict[str, Any] | None:
    """Return the controller owner reference of an object, if any."""
    for ref in obj.get("metadata", {}).get("ownerReferences") or []:
        if ref.get("controller"):
            return ref
    return None


def is_owned_by(secret: dict[str, Any], rotator: dict[str, Any]) -> bool:
    """Check whether a secret is controlled by the given SecretRotator.

    The controller owner reference must match apiVersion, kind and name.
    """
    ref = controller_of(secret)
    if ref is None:
        return False
    return (
        ref.get("apiVersion") == rotator.get("apiVersion", API_GROUP_VERSION)
        and ref.get("kind") == rotator.get("kind", KIND_SECRET_ROTATOR)
        and ref.get("name") == rotator.get("metadata", {}).get("name")
    )


def build_docker_config(registry_host: str, credential: RegistryCredential) -> str:
    """Render a ``.dockerconfigjson`` document for a single registry."""
    auth = _b64(f"{credential.username}:{credential.token}")
    return json.dumps({"auths": {registry_host: {"auth": auth}}})


def build_secret_data(
    secret_type: str,
    registry_host: str,
    credential: RegistryCredential,
) -> tuple[str, dict[str, str]]:
    """Build the Kubernetes secret type and base64-encoded data map.

    Args:
        secret_type: ``docker`` or ``generic``
        registry_host: Registry host the credential is valid for
        credential: Registry username/token pair

    Returns:
        Tuple of (Kubernetes secret type, data)
    """
    if secret_type == SECRET_TYPE_DOCKER:
        return K8S_SECRET_TYPE_DOCKER, {
            DOCKER_CONFIG_KEY: _b64(build_docker_config(registry_host, credential)),
        }
    return K8S_SECRET_TYPE_OPAQUE, {
        GENERIC_USER_KEY: _b64(credential.username),
        GENERIC_TOKEN_KEY: _b64(credential.token),
    }


def build_secret(
    name: str,
    namespace: str,
    secret_type: str,
    registry_host: str,
    credential: RegistryCredential,
    rotator: dict[str, Any],
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    existing: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the desired body of a managed secret.

    When ``existing`` is given, its metadata (resourceVersion, foreign labels
    and annotations) is carried over so the body can be used for a replace.
    """
    k8s_type, data = build_secret_data(secret_type, registry_host, credential)

    if existing is not None:
        metadata = dict(existing.get("metadata", {}))
        metadata["labels"] = {**(metadata.get("labels") or {}), **(labels or {})}
        metadata["annotations"] = {**(metadata.get("annotations") or {}), **(annotations or {})}
    else:
        metadata = {
            "name": name,
            "namespace": namespace,
            "labels": dict(labels or {}),
            "annotations": dict(annotations or {}),
        }
    metadata["ownerReferences"] = [owner_reference(rotator)]

    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": metadata,
        "type": k8s_type,
        "data": data,
    }
