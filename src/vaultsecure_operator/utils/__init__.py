"""Utility functions for the VaultSecure Operator."""

from .conditions import (
    clear_failure_conditions,
    set_change_rejected_condition,
    set_creation_failed_condition,
    set_drifted_condition,
    set_ready_condition,
    set_rotation_failed_condition,
    update_condition,
)
from .context import (
    get_context_dict,
    get_correlation_id,
    propagate_trace_context,
    with_correlation_id,
)
from .errors import sanitize_dict, sanitize_error_message, sanitize_exception
from .events import emit_event
from .rate_limit import handle_rate_limit_error, rate_limit_iam, rate_limit_k8s, rate_limit_vault
from .retry import RetryExhausted, RetryPolicy, RetryResult
from .secrets import get_secret_value

__all__ = [
    "RetryExhausted",
    "RetryPolicy",
    "RetryResult",
    "clear_failure_conditions",
    "emit_event",
    "get_context_dict",
    "get_correlation_id",
    "get_secret_value",
    "handle_rate_limit_error",
    "propagate_trace_context",
    "rate_limit_iam",
    "rate_limit_k8s",
    "rate_limit_vault",
    "sanitize_dict",
    "sanitize_error_message",
    "sanitize_exception",
    "set_change_rejected_condition",
    "set_creation_failed_condition",
    "set_drifted_condition",
    "set_ready_condition",
    "set_rotation_failed_condition",
    "update_condition",
    "with_correlation_id",
]
