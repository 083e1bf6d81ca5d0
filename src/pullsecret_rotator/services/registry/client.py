"""Client for the registry's AWS token endpoint."""

from __future__ import annotations

import logging
import os
import time

import requests

from ... import metrics
from ...constants import (
    CA_PEM,
    CERT_PEM,
    CERTIFICATE_BASE_PATH,
    KEY_PEM,
    REGISTRY_REQUEST_TIMEOUT_SECONDS,
    TLS_CA,
    TLS_CRT,
    TLS_KEY,
    TOKEN_ENDPOINT_PATH,
)
from ...models import CredentialProof, RegistryCredential, SecurityOptions
from ...utils.errors import TokenRequestError, sanitize_dict

logger = logging.getLogger(__name__)


def token_url(registry_host: str) -> str:
    return f"https://{registry_host}{TOKEN_ENDPOINT_PATH}"


def _first_existing(directory: str, *candidates: tuple[str, ...]) -> tuple[str, ...] | None:
    """Return the first group of file names that all exist in ``directory``."""
    for group in candidates:
        paths = tuple(os.path.join(directory, name) for name in group)
        if all(os.path.isfile(path) for path in paths):
            return paths
    return None


class RegistryTokenClient:
    """Exchanges a signed proof of identity for a registry username/token."""

    def __init__(self, certificate_base_path: str = CERTIFICATE_BASE_PATH) -> None:
        self.certificate_base_path = certificate_base_path

    def build_session(self, security: SecurityOptions, rotator_name: str) -> requests.Session:
        """Create an HTTP session configured with the resource's TLS options.

        Client certificate and CA are each picked up independently from the
        staged certificate directory, ``tls.*``/``ca.crt`` taking precedence
        over the ``*.pem`` names.
        """
        session = requests.Session()
        if not security.enabled:
            return session
        if security.insecure_skip_verify:
            session.verify = False
            return session

        directory = os.path.join(self.certificate_base_path, rotator_name)
        client_cert = _first_existing(directory, (TLS_CRT, TLS_KEY), (CERT_PEM, KEY_PEM))
        if client_cert is not None:
            session.cert = client_cert
        ca = _first_existing(directory, (TLS_CA,), (CA_PEM,))
        if ca is not None:
            session.verify = ca[0]
        return session

    def request_token(
        self,
        registry_host: str,
        proof: CredentialProof,
        security: SecurityOptions,
        rotator_name: str,
    ) -> RegistryCredential:
        """Request a short-lived registry token.

        Args:
            registry_host: Registry host without scheme
            proof: Signed GetCallerIdentity request and maximum validity
            security: TLS options of the SecretRotator
            rotator_name: SecretRotator name, locating its staged certificates

        Returns:
            Registry credential valid for ``proof.max_validity_seconds``

        Raises:
            TokenRequestError: On transport errors, non-200 responses or an
                unusable response body
        """
        url = token_url(registry_host)
        headers = dict(proof.request.headers)
        headers["Content-Type"] = "application/json"
        ttl = proof.max_validity_seconds

        start_time = time.time()
        session = self.build_session(security, rotator_name)
        try:
            response = session.post(
                url,
                json={"expires_in": ttl},
                headers=headers,
                timeout=REGISTRY_REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            metrics.token_requests_total.labels(flow="registry", result="error").inc()
            raise TokenRequestError(f"Error sending token request to {url}", cause=e) from e
        finally:
            session.close()
            metrics.api_call_duration_seconds.labels(api_type="registry", operation="create_token").observe(
                time.time() - start_time
            )

        if response.status_code != 200:
            metrics.token_requests_total.labels(flow="registry", result="error").inc()
            raise TokenRequestError(
                f"Token creation to {url} returned {response.status_code} response",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            metrics.token_requests_total.labels(flow="registry", result="error").inc()
            raise TokenRequestError("Error reading registry token response", status_code=200, cause=e) from e

        username = body.get("username") if isinstance(body, dict) else None
        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not username or not access_token:
            metrics.token_requests_total.labels(flow="registry", result="error").inc()
            if isinstance(body, dict):
                logger.debug(f"Unexpected registry token response: {sanitize_dict(body)}")
            raise TokenRequestError("Registry token response is missing username or access_token", status_code=200)

        metrics.token_requests_total.labels(flow="registry", result="success").inc()
        logger.info(f"Obtained registry token for {registry_host} valid for {ttl}s")
        return RegistryCredential(username=username, token=access_token, ttl_seconds=float(ttl))
