"""Main entry point for the Vault Secure Operator."""

from __future__ import annotations

import logging
import os
from typing import Any

import kopf

from . import handlers  # noqa: F401  (registers kopf handlers)
from . import health
from . import logging as structured_logging
from .builders.clients import get_controller, init_controller, reset_controller
from .tracing import initialize_tracing

logger = logging.getLogger(__name__)

_metrics_server: Any = None


def _controller_ready() -> bool:
    """Readiness: the shared controller exists and Vault accepts its token."""
    try:
        return get_controller().secret_engine.is_authenticated()
    except Exception as e:
        logger.warning(f"Readiness check failed: {e}")
        return False


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator."""
    global _metrics_server

    # Set up structured JSON logging
    structured_logging.setup_structured_logging()
    initialize_tracing()

    # Use AnnotationsProgressStorage to avoid conflicts with status updates
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage()

    settings.posting.level = logging.WARNING
    settings.networking.request_timeout = 30.0
    # Different resources reconcile concurrently; one resource is always serialized
    settings.execution.max_workers = int(os.getenv("MAX_WORKERS", "4"))

    # Clients are built once and shared by every handler
    init_controller()

    # Start metrics HTTP server with health check endpoints
    metrics_port = int(os.getenv("METRICS_PORT", "8080"))
    _metrics_server = health.start_metrics_server(metrics_port, readiness_check=_controller_ready)


@kopf.on.cleanup()
def shutdown(**_: Any) -> None:
    """Stop the metrics server and drop the shared clients."""
    if _metrics_server is not None:
        _metrics_server.shutdown()
    reset_controller()
