"""Prometheus metrics for the Vault Secure Operator."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "vaultsecure_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "vaultsecure_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Lifecycle operation metrics
lifecycle_operations_total = Counter(
    "vaultsecure_operator_lifecycle_operations_total",
    "Total number of lifecycle controller operations",
    ["operation", "result"],
)

rotation_attempts = Histogram(
    "vaultsecure_operator_rotation_attempts",
    "Number of attempts needed to trigger an engine root rotation",
    ["operation"],
    buckets=[1, 2, 3, 4, 5, 10],
)

# Configuration drift detection metrics
drift_detected_total = Counter(
    "vaultsecure_operator_drift_detected_total",
    "Total number of engine/identity key drift detections",
    ["kind"],
)

resource_status_total = Counter(
    "vaultsecure_operator_resource_status_total",
    "Resource status transitions",
    ["kind", "status"],
)

error_total = Counter(
    "vaultsecure_operator_error_total",
    "Total number of errors",
    ["kind", "error_type"],
)

# API call metrics
api_call_total = Counter(
    "vaultsecure_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "vaultsecure_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)
