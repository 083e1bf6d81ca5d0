"""Staging of client certificates used for the registry token request."""

from __future__ import annotations

import logging
import os
from typing import Any

from ..constants import CERTIFICATE_BASE_PATH, CERTIFICATE_KEYS
from .errors import ReconcileError
from .secrets import decode_secret_value

logger = logging.getLogger(__name__)


def certificate_dir(rotator_name: str, base_path: str = CERTIFICATE_BASE_PATH) -> str:
    """Directory holding the staged certificates of one SecretRotator."""
    return os.path.join(base_path, rotator_name)


def stage_certificates(
    store: Any,
    rotator_name: str,
    secret_name: str,
    secret_namespace: str,
    base_path: str = CERTIFICATE_BASE_PATH,
) -> str:
    """Copy certificate keys from a secret to the local staging directory.

    Only ``cert.pem``, ``key.pem``, ``ca.pem``, ``tls.crt``, ``tls.key`` and
    ``ca.crt`` are written; other keys are logged and ignored.

    Args:
        store: Kubernetes store used to read the secret
        rotator_name: Name of the SecretRotator, used as the directory name
        secret_name: Name of the secret holding the certificates
        secret_namespace: Namespace of that secret
        base_path: Root of the staging area

    Returns:
        Path of the directory the certificates were written to

    Raises:
        ReconcileError: If the secret cannot be read or the files written
    """
    try:
        secret = store.read_secret(secret_namespace, secret_name)
    except Exception as e:
        raise ReconcileError(f"Unable to read certificate secret {secret_namespace}/{secret_name}", cause=e) from e
    if secret is None:
        raise ReconcileError(f"Certificate secret {secret_namespace}/{secret_name} not found")

    target = certificate_dir(rotator_name, base_path)
    try:
        os.makedirs(target, mode=0o700, exist_ok=True)
        for key, value in (secret.get("data") or {}).items():
            if key not in CERTIFICATE_KEYS:
                logger.warning(f"Ignoring unsupported certificate key {key!r} in secret {secret_namespace}/{secret_name}")
                continue
            path = os.path.join(target, key)
            with open(path, "wb") as f:
                f.write(decode_secret_value(value))
            os.chmod(path, 0o600)
    except OSError as e:
        raise ReconcileError(f"Unable to stage certificates in {target}", cause=e) from e

    return target
