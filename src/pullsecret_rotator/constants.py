"""Constants for the Pull Secret Rotator."""

import os

# API Group
API_GROUP = "rotator.cloud37.dev"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_SECRET_ROTATOR = "SecretRotator"
PLURAL_SECRET_ROTATORS = "secretrotators"

# Annotations
ANNOTATION_NAMESPACE_TRIGGER = f"{API_GROUP}/namespace-trigger"
ANNOTATION_ROLE_ARN = "eks.amazonaws.com/role-arn"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Field Manager
FIELD_MANAGER = "pullsecret-rotator"
CONTROLLER_NAME = "pullsecret-rotator"

# Condition Types
COND_AVAILABLE = "Available"
COND_DEGRADED = "Degraded"

# Event Reasons
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_SECRETS_ROTATED = "SecretsRotated"
EVENT_REASON_DELETING = "Deleting"
EVENT_REASON_TOKEN_TTL_MISCONFIGURED = "TokenTTLMisconfigured"

# Generated secret types
SECRET_TYPE_DOCKER = "docker"
SECRET_TYPE_GENERIC = "generic"
SECRET_TYPES = (SECRET_TYPE_DOCKER, SECRET_TYPE_GENERIC)

# Managed secret keys
DOCKER_CONFIG_KEY = ".dockerconfigjson"
GENERIC_USER_KEY = "user"
GENERIC_TOKEN_KEY = "token"

# Kubernetes secret types
K8S_SECRET_TYPE_DOCKER = "kubernetes.io/dockerconfigjson"
K8S_SECRET_TYPE_OPAQUE = "Opaque"

# Credential exchange
ENV_POD_IDENTITY_URI = "AWS_CONTAINER_CREDENTIALS_FULL_URI"
ENV_POD_IDENTITY_TOKEN_FILE = "AWS_CONTAINER_AUTHORIZATION_TOKEN_FILE"
ENV_ROLE_ARN = "AWS_ROLE_ARN"
ENV_WEB_IDENTITY_TOKEN_FILE = "AWS_WEB_IDENTITY_TOKEN_FILE"
ENV_POD_NAME = "POD_NAME"
ENV_POD_NAMESPACE = "POD_NAMESPACE"

STS_AUDIENCE = "sts.amazonaws.com"
STS_CALLER_IDENTITY_URL = "https://sts.amazonaws.com/?Action=GetCallerIdentity&Version=2011-06-15"
STS_SIGNING_REGION = "us-east-1"
DEFAULT_AWS_REGION = "us-west-2"
ROLE_SESSION_PREFIX = "pullSecretRotation"

# Maximum session (and token TTL) used when the role's own value is unknown, 3 hours
DEFAULT_MAX_SESSION_SECONDS = 10800
SERVICE_ACCOUNT_TOKEN_EXPIRATION_SECONDS = 3600
CREDENTIAL_EXCHANGE_TIMEOUT_SECONDS = 5.0

# Registry token endpoint
TOKEN_ENDPOINT_PATH = "/access/api/v1/aws/token"
REGISTRY_REQUEST_TIMEOUT_SECONDS = 30.0

# Certificates
CERTIFICATE_BASE_PATH = os.getenv("CERTIFICATE_BASE_PATH", "/tmp/security")
CERT_PEM = "cert.pem"
KEY_PEM = "key.pem"
CA_PEM = "ca.pem"
TLS_CRT = "tls.crt"
TLS_KEY = "tls.key"
TLS_CA = "ca.crt"
CERTIFICATE_KEYS = (CERT_PEM, KEY_PEM, CA_PEM, TLS_CRT, TLS_KEY, TLS_CA)

# Scheduling
RETRY_DELAY_SECONDS = float(os.getenv("RETRY_DELAY_SECONDS", "60"))
UNEXPECTED_ERROR_DELAY_SECONDS = 10.0
TTL_REFRESH_RATIO = 0.75
CONFLICT_RETRIES = 3
