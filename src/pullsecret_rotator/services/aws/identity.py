"""Exchange of a federated AWS identity for a signed proof-of-identity request."""

from __future__ import annotations

import logging
import os
import time
from typing import Any

import boto3
import requests
from botocore import UNSIGNED
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.config import Config
from botocore.credentials import Credentials
from botocore.exceptions import BotoCoreError, ClientError

from ... import metrics
from ...constants import (
    ANNOTATION_ROLE_ARN,
    CREDENTIAL_EXCHANGE_TIMEOUT_SECONDS,
    DEFAULT_AWS_REGION,
    DEFAULT_MAX_SESSION_SECONDS,
    ENV_POD_IDENTITY_TOKEN_FILE,
    ENV_POD_IDENTITY_URI,
    ENV_ROLE_ARN,
    ENV_WEB_IDENTITY_TOKEN_FILE,
    ROLE_SESSION_PREFIX,
    SERVICE_ACCOUNT_TOKEN_EXPIRATION_SECONDS,
    STS_AUDIENCE,
    STS_CALLER_IDENTITY_URL,
    STS_SIGNING_REGION,
)
from ...models import CredentialProof, ServiceAccountRef, SignedRequest
from ...utils.errors import CredentialExchangeError

logger = logging.getLogger(__name__)

FLOW_POD_IDENTITY = "pod_identity"
FLOW_IRSA = "irsa"


def pod_identity_enabled() -> bool:
    """Pod Identity is used whenever the agent token file is configured."""
    return bool(os.getenv(ENV_POD_IDENTITY_TOKEN_FILE))


def aws_region() -> str:
    return os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or DEFAULT_AWS_REGION


def role_name_from_arn(role_arn: str) -> str:
    """Extract the role name (last path segment) from a role ARN.

    Raises:
        ValueError: If the ARN has no role path
    """
    _, sep, name = role_arn.rpartition("/")
    if not sep or not name:
        raise ValueError(f"Role ARN {role_arn!r} is not valid")
    return name


def sign_caller_identity(access_key: str, secret_key: str, session_token: str | None) -> SignedRequest:
    """Sign a GetCallerIdentity request with SigV4 using temporary credentials."""
    request = AWSRequest(method="GET", url=STS_CALLER_IDENTITY_URL)
    SigV4Auth(Credentials(access_key, secret_key, session_token), "sts", STS_SIGNING_REGION).add_auth(request)
    return SignedRequest(method=request.method, url=request.url, headers=dict(request.headers.items()))


class CredentialExchanger:
    """Runs the Pod Identity or IRSA flow and signs the proof of identity."""

    def __init__(self, store: Any) -> None:
        self.store = store
        self._config = Config(
            connect_timeout=CREDENTIAL_EXCHANGE_TIMEOUT_SECONDS,
            read_timeout=CREDENTIAL_EXCHANGE_TIMEOUT_SECONDS,
            retries={"max_attempts": 2},
        )

    def exchange(self, service_account: ServiceAccountRef) -> CredentialProof:
        """Obtain a signed proof of identity for the acting service account.

        Args:
            service_account: Service account whose role is assumed (IRSA only)

        Returns:
            The signed request and the maximum token validity in seconds

        Raises:
            CredentialExchangeError: If any step of the flow fails
        """
        flow = FLOW_POD_IDENTITY if pod_identity_enabled() else FLOW_IRSA
        try:
            if flow == FLOW_POD_IDENTITY:
                proof = self._exchange_pod_identity()
            else:
                proof = self._exchange_web_identity(service_account)
        except CredentialExchangeError:
            metrics.token_requests_total.labels(flow=flow, result="error").inc()
            raise
        metrics.token_requests_total.labels(flow=flow, result="success").inc()
        return proof

    def _exchange_pod_identity(self) -> CredentialProof:
        logger.info("Using Pod Identity flow")
        uri = os.getenv(ENV_POD_IDENTITY_URI)
        if not uri:
            raise CredentialExchangeError(f"No AWS credentials available for Pod Identity ({ENV_POD_IDENTITY_URI} not set)")
        token_file = os.getenv(ENV_POD_IDENTITY_TOKEN_FILE)
        if not token_file:
            raise CredentialExchangeError(f"Pod Identity token file not found ({ENV_POD_IDENTITY_TOKEN_FILE} not set)")

        try:
            with open(token_file, encoding="utf-8") as f:
                authorization = f.read().strip()
        except OSError as e:
            raise CredentialExchangeError("Failed to read Pod Identity token file", cause=e) from e

        try:
            response = requests.get(
                uri,
                headers={"Authorization": authorization},
                timeout=CREDENTIAL_EXCHANGE_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise CredentialExchangeError("Failed to get Pod Identity credentials", cause=e) from e

        if response.status_code != 200:
            raise CredentialExchangeError(f"Pod Identity credentials endpoint returned {response.status_code}")

        try:
            body = response.json()
            access_key = body["AccessKeyId"]
            secret_key = body["SecretAccessKey"]
            session_token = body.get("Token")
        except (ValueError, KeyError, TypeError) as e:
            raise CredentialExchangeError("Failed to parse Pod Identity credentials", cause=e) from e
        if not access_key or not secret_key:
            raise CredentialExchangeError("Pod Identity credentials are incomplete")

        logger.info("Obtained Pod Identity credentials", extra={"access_key_prefix": access_key[:4]})
        return CredentialProof(
            request=sign_caller_identity(access_key, secret_key, session_token),
            max_validity_seconds=DEFAULT_MAX_SESSION_SECONDS,
        )

    def _resolve_web_identity(self, service_account: ServiceAccountRef) -> tuple[str, str]:
        """Return the role ARN and a web identity token for the IRSA flow."""
        try:
            account = self.store.read_service_account(service_account.namespace, service_account.name)
        except Exception as e:
            raise CredentialExchangeError(
                f"Unable to read service account {service_account.namespace}/{service_account.name}", cause=e
            ) from e

        annotations = (account.get("metadata") or {}).get("annotations") or {}
        role_arn = annotations.get(ANNOTATION_ROLE_ARN)
        if role_arn:
            try:
                token = self.store.create_service_account_token(
                    service_account.namespace,
                    service_account.name,
                    audience=STS_AUDIENCE,
                    expiration_seconds=SERVICE_ACCOUNT_TOKEN_EXPIRATION_SECONDS,
                )
            except Exception as e:
                raise CredentialExchangeError(
                    f"Unable to request a token for service account {service_account.namespace}/{service_account.name}",
                    cause=e,
                ) from e
            return role_arn, token

        role_arn = os.getenv(ENV_ROLE_ARN)
        token_file = os.getenv(ENV_WEB_IDENTITY_TOKEN_FILE)
        if not role_arn or not token_file:
            raise CredentialExchangeError(
                f"Service account {service_account.namespace}/{service_account.name} has no {ANNOTATION_ROLE_ARN} "
                f"annotation and {ENV_ROLE_ARN}/{ENV_WEB_IDENTITY_TOKEN_FILE} are not set"
            )
        try:
            with open(token_file, encoding="utf-8") as f:
                return role_arn, f.read().strip()
        except OSError as e:
            raise CredentialExchangeError("Failed to read web identity token file", cause=e) from e

    def _exchange_web_identity(self, service_account: ServiceAccountRef) -> CredentialProof:
        role_arn, web_identity_token = self._resolve_web_identity(service_account)
        logger.info(f"Using IRSA flow for service account {service_account.namespace}/{service_account.name}")

        region = aws_region()
        sts = boto3.client("sts", region_name=region, config=self._config.merge(Config(signature_version=UNSIGNED)))
        try:
            response = sts.assume_role_with_web_identity(
                RoleArn=role_arn,
                RoleSessionName=f"{ROLE_SESSION_PREFIX}{int(time.time() * 1000)}",
                WebIdentityToken=web_identity_token,
            )
        except (BotoCoreError, ClientError) as e:
            raise CredentialExchangeError("Unable to assume role with web identity", cause=e) from e

        credentials = response["Credentials"]
        access_key = credentials["AccessKeyId"]
        secret_key = credentials["SecretAccessKey"]
        session_token = credentials.get("SessionToken")

        return CredentialProof(
            request=sign_caller_identity(access_key, secret_key, session_token),
            max_validity_seconds=self._max_session_duration(role_arn, access_key, secret_key, session_token, region),
        )

    def _max_session_duration(
        self,
        role_arn: str,
        access_key: str,
        secret_key: str,
        session_token: str | None,
        region: str,
    ) -> int:
        """Read the role's MaxSessionDuration, falling back to the default on failure."""
        try:
            iam = boto3.client(
                "iam",
                region_name=region,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                aws_session_token=session_token,
                config=self._config,
            )
            role = iam.get_role(RoleName=role_name_from_arn(role_arn))["Role"]
            return int(role["MaxSessionDuration"])
        except (BotoCoreError, ClientError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Error getting max session duration of role {role_arn}, using the default of "
                f"{DEFAULT_MAX_SESSION_SECONDS}s: {e}"
            )
            return DEFAULT_MAX_SESSION_SECONDS
