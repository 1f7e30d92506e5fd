"""Base handler class with common functionality for CRD handlers."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

import kopf

from .. import metrics
from ..constants import CONTROLLER_NAME, FINALIZER
from ..lifecycle.errors import LifecycleError
from ..logging import log_resource_event
from ..utils.context import with_correlation_id
from ..utils.errors import sanitize_exception
from ..utils.events import emit_reconcile_failed, emit_reconcile_started, emit_validate_failed

_T = TypeVar("_T")

ConditionFn = Callable[[list[dict[str, Any]], str], list[dict[str, Any]]]


class BaseHandler:
    """Base class for CRD handlers with common functionality."""

    def __init__(self, kind: str):
        """Initialize base handler.

        Args:
            kind: The Kubernetes resource kind (e.g., "VaultAccessKey")
        """
        self.kind = kind
        self.logger = logging.getLogger(__name__)

    def _get_resource_context(self, meta: dict[str, Any]) -> dict[str, Any]:
        """Extract common resource context from metadata."""
        return {
            "name": meta.get("name", "unknown"),
            "namespace": meta.get("namespace", "default"),
            "uid": meta.get("uid", "unknown"),
        }

    def _log(
        self,
        level: int,
        meta: dict[str, Any],
        message: str,
        event: str,
        reason: str,
        **kwargs: Any,
    ) -> None:
        ctx = self._get_resource_context(meta)
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=ctx["name"],
            namespace=ctx["namespace"],
            uid=ctx["uid"],
            event=event,
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    def log_info(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "info",
        reason: str = "Info",
        **kwargs: Any,
    ) -> None:
        """Log an info-level structured log message."""
        self._log(logging.INFO, meta, message, event, reason, **kwargs)

    def log_warning(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "warning",
        reason: str = "Warning",
        **kwargs: Any,
    ) -> None:
        """Log a warning-level structured log message."""
        self._log(logging.WARNING, meta, message, event, reason, **kwargs)

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: Exception | None = None,
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error-level structured log message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            error: Optional exception to include sanitized error details
            event: Event type (default: "error")
            reason: Reason for the event (default: "Error")
            **kwargs: Additional fields to include in the log
        """
        log_data = kwargs.copy()

        if error is not None:
            log_data["error"] = sanitize_exception(error)
            log_data["error_type"] = type(error).__name__
            if isinstance(error, LifecycleError):
                log_data["identity"] = error.identity
                log_data["step"] = error.step

        self._log(logging.ERROR, meta, message, event, reason, **log_data)

    def handle_validation_error(
        self,
        meta: dict[str, Any],
        error_msg: str,
    ) -> None:
        """Handle validation error consistently.

        Raises:
            kopf.PermanentError: Always, an invalid spec will not fix itself
        """
        self.log_error(meta, error_msg, reason="ValidationFailed")
        emit_validate_failed(meta, error_msg)
        metrics.reconcile_total.labels(kind=self.kind, result="failed").inc()
        raise kopf.PermanentError(error_msg)

    def handle_lifecycle_error(
        self,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        error: LifecycleError,
        condition_fn: ConditionFn | None = None,
        status_data: dict[str, Any] | None = None,
    ) -> None:
        """Record a lifecycle failure on the resource and hand it to kopf.

        Retryable failures become kopf.TemporaryError so kopf re-runs the
        handler with backoff; violated assumptions become kopf.PermanentError
        and wait for an operator.

        Args:
            meta: Kubernetes resource metadata
            status: Resource status
            patch: Kopf patch object
            error: The lifecycle failure
            condition_fn: Optional function setting a failure condition
            status_data: Additional status fields to patch

        Raises:
            kopf.TemporaryError: For retryable failures
            kopf.PermanentError: For everything else
        """
        sanitized_error = sanitize_exception(error)

        self.log_error(meta, "Lifecycle operation failed", error=error, reason=type(error).__name__)
        emit_reconcile_failed(meta, sanitized_error)
        metrics.error_total.labels(kind=self.kind, error_type=type(error).__name__).inc()

        status_update: dict[str, Any] = {
            "observedGeneration": meta.get("generation", 0),
            **(status_data or {}),
        }
        if condition_fn is not None:
            conditions = list(status.get("conditions", []))
            status_update["conditions"] = condition_fn(conditions, sanitized_error)
        patch.status.update(status_update)

        if error.retryable:
            raise kopf.TemporaryError(sanitized_error) from error
        raise kopf.PermanentError(sanitized_error) from error

    def ensure_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Ensure finalizer is present in metadata."""
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER not in finalizers:
            finalizers.append(FINALIZER)
            patch.metadata["finalizers"] = finalizers

    def remove_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Remove finalizer from metadata."""
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER in finalizers:
            finalizers.remove(FINALIZER)
            patch.metadata["finalizers"] = finalizers if finalizers else None

    def reconcile_with_metrics(
        self,
        meta: dict[str, Any],
        reconcile_fn: Callable[[], _T],
    ) -> _T:
        """Execute reconciliation with metrics, correlation id and error logging.

        Args:
            meta: Kubernetes resource metadata
            reconcile_fn: Function to execute for reconciliation

        Returns:
            Whatever reconcile_fn returns
        """
        with with_correlation_id(meta.get("uid", "unknown")):
            emit_reconcile_started(meta)
            metrics.reconcile_total.labels(kind=self.kind, result="started").inc()

            start_time = time.time()
            try:
                result = reconcile_fn()
                metrics.reconcile_total.labels(kind=self.kind, result="success").inc()
                return result
            except (kopf.TemporaryError, kopf.PermanentError):
                # Already logged and recorded on the resource
                metrics.reconcile_total.labels(kind=self.kind, result="failed").inc()
                raise
            except Exception as e:
                metrics.error_total.labels(kind=self.kind, error_type=type(e).__name__).inc()
                self.log_error(meta, "Reconciliation failed", error=e, reason="ReconciliationFailed")
                emit_reconcile_failed(meta, f"Reconciliation failed: {sanitize_exception(e)}")
                metrics.reconcile_total.labels(kind=self.kind, result="error").inc()
                raise
            finally:
                duration = time.time() - start_time
                metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(duration)

    def update_resource_status(
        self,
        patch: kopf.Patch,
        meta: dict[str, Any],
        ready: bool,
        status_data: dict[str, Any] | None = None,
    ) -> None:
        """Update resource status with common fields.

        Args:
            patch: Kopf patch object
            meta: Kubernetes resource metadata
            ready: Whether the resource is ready
            status_data: Additional status data to include
        """
        status_update = {
            "observedGeneration": meta.get("generation", 0),
            **(status_data or {}),
        }

        metrics.resource_status_total.labels(kind=self.kind, status="ready" if ready else "not_ready").inc()
        patch.status.update(status_update)
