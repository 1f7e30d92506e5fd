"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_ACCESS_KEY_CREATED,
    EVENT_REASON_ACCESS_KEY_DELETED,
    EVENT_REASON_ACCESS_KEY_GONE,
    EVENT_REASON_ACCESS_KEY_IMPORTED,
    EVENT_REASON_DRIFT_DETECTED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_REPLACEMENT_STARTED,
    EVENT_REASON_VALIDATE_FAILED,
    EVENT_REASON_VALIDATE_SUCCEEDED,
)
from .errors import sanitize_error_message


def emit_event(
    meta: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        meta: Resource metadata
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        meta,
        reason=reason,
        message=sanitize_error_message(message),
        type=type_,
    )


def emit_reconcile_started(meta: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(meta, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(meta: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(meta, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_succeeded(meta: dict[str, Any]) -> None:
    """Emit validation succeeded event."""
    emit_event(meta, EVENT_REASON_VALIDATE_SUCCEEDED, "Validation succeeded")


def emit_validate_failed(meta: dict[str, Any], message: str) -> None:
    """Emit validation failed event."""
    emit_event(meta, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")


def emit_access_key_created(meta: dict[str, Any], key_id: str) -> None:
    """Emit access key created event."""
    emit_event(meta, EVENT_REASON_ACCESS_KEY_CREATED, f"Access key {key_id} created and owned by the engine")


def emit_access_key_imported(meta: dict[str, Any], key_id: str) -> None:
    """Emit access key imported event."""
    emit_event(meta, EVENT_REASON_ACCESS_KEY_IMPORTED, f"Existing pairing adopted, engine rotated to {key_id}")


def emit_access_key_deleted(meta: dict[str, Any], key_id: str) -> None:
    """Emit access key deleted event."""
    emit_event(meta, EVENT_REASON_ACCESS_KEY_DELETED, f"Access key {key_id} deleted")


def emit_access_key_gone(meta: dict[str, Any], key_id: str) -> None:
    """Emit access key gone event."""
    emit_event(
        meta,
        EVENT_REASON_ACCESS_KEY_GONE,
        f"Access key {key_id} no longer exists at the identity provider",
        type_="Warning",
    )


def emit_drift_detected(meta: dict[str, Any], identity_key_id: str, engine_key_id: str | None) -> None:
    """Emit drift detected event."""
    emit_event(
        meta,
        EVENT_REASON_DRIFT_DETECTED,
        f"Engine reports key {engine_key_id}, expected {identity_key_id}",
        type_="Warning",
    )


def emit_replacement_started(meta: dict[str, Any]) -> None:
    """Emit replacement started event."""
    emit_event(meta, EVENT_REASON_REPLACEMENT_STARTED, "Replacing drifted access key")
