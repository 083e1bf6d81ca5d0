"""Prometheus metrics for the Pull Secret Rotator."""

from prometheus_client import Counter, Gauge, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "pullsecret_rotator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "pullsecret_rotator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "pullsecret_rotator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

# Managed secret metrics
secret_operations_total = Counter(
    "pullsecret_rotator_secret_operations_total",
    "Total number of managed secret operations",
    ["operation", "result"],
)

provisioned_namespaces = Gauge(
    "pullsecret_rotator_provisioned_namespaces",
    "Number of namespaces provisioned by the last pass",
    ["rotator"],
)

failed_namespaces = Gauge(
    "pullsecret_rotator_failed_namespaces",
    "Number of namespaces with failures in the last pass",
    ["rotator"],
)

# Credential metrics
token_requests_total = Counter(
    "pullsecret_rotator_token_requests_total",
    "Total number of credential exchanges and registry token requests",
    ["flow", "result"],
)

token_ttl_seconds = Gauge(
    "pullsecret_rotator_token_ttl_seconds",
    "TTL of the last registry token issued",
    ["rotator"],
)

# Namespace watcher metrics
namespace_triggers_total = Counter(
    "pullsecret_rotator_namespace_triggers_total",
    "Total number of out-of-band passes triggered by namespace events",
    ["event"],
)

# API call metrics
api_call_total = Counter(
    "pullsecret_rotator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "pullsecret_rotator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "pullsecret_rotator_rate_limit_hits_total",
    "Total number of rate limit hits",
    ["api_type"],
)

queue_depth = Gauge(
    "pullsecret_rotator_queue_depth",
    "Number of resources waiting in the work queue",
)
