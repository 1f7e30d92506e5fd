"""Rate limiting utilities for API calls."""

from __future__ import annotations

import os
import threading
import time
from functools import wraps
from typing import Any, Callable, TypeVar

from kubernetes.client.exceptions import ApiException

_F = TypeVar("_F", bound=Callable[..., Any])

# Rate limit configuration
_K8S_RATE_LIMIT_PER_SECOND = float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0"))
_IAM_RATE_LIMIT_PER_SECOND = float(os.getenv("IAM_RATE_LIMIT_PER_SECOND", "5.0"))
_VAULT_RATE_LIMIT_PER_SECOND = float(os.getenv("VAULT_RATE_LIMIT_PER_SECOND", "10.0"))

# Track last call times per API
_last_call_times: dict[str, float] = {"k8s": 0.0, "iam": 0.0, "vault": 0.0}
_locks: dict[str, threading.Lock] = {api_type: threading.Lock() for api_type in _last_call_times}


def _throttle(api_type: str, rate_per_second: float) -> None:
    """Sleep until at least 1/rate seconds passed since the last call to api_type."""
    min_interval = 1.0 / rate_per_second
    with _locks[api_type]:
        time_since_last_call = time.time() - _last_call_times[api_type]
        if time_since_last_call < min_interval:
            time.sleep(min_interval - time_since_last_call)
        _last_call_times[api_type] = time.time()


def rate_limit_k8s(func: _F) -> _F:
    """Decorator to rate limit Kubernetes API calls."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _throttle("k8s", _K8S_RATE_LIMIT_PER_SECOND)
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def rate_limit_iam(func: _F) -> _F:
    """Decorator to rate limit IAM API calls.

    IAM throttles aggressively per account, and all resources share the
    same account, so the interval is enforced process-wide.
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _throttle("iam", _IAM_RATE_LIMIT_PER_SECOND)
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def rate_limit_vault(func: _F) -> _F:
    """Decorator to rate limit Vault API calls."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _throttle("vault", _VAULT_RATE_LIMIT_PER_SECOND)
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def handle_rate_limit_error(e: Exception, attempt: int = 0, max_retries: int = 3) -> bool:
    """Back off if a Kubernetes API exception is a rate limit error.

    Args:
        e: Exception raised by the Kubernetes client
        attempt: Number of retries already made for this call
        max_retries: Maximum number of retries

    Returns:
        True if the caller should retry, False otherwise
    """
    if not isinstance(e, ApiException):
        return False

    # Kubernetes API rate limit errors typically return 429 or 503
    if e.status == 429 or (e.status == 503 and "rate limit" in str(e).lower()):
        if attempt < max_retries:
            # Exponential backoff: 1s, 2s, 4s
            time.sleep(2 ** attempt)
            return True
    return False
