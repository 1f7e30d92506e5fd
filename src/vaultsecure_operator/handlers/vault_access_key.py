"""Handler for VaultAccessKey CRD."""

from __future__ import annotations

import os
from typing import Any, Callable

import kopf
from kubernetes import client

from .. import metrics
from ..builders.clients import get_controller
from ..constants import (
    API_GROUP,
    API_GROUP_VERSION,
    API_VERSION,
    FIELD_MANAGER,
    KIND_VAULT_ACCESS_KEY,
    PHASE_ABSENT,
    PHASE_DRIFTED,
    PHASE_GONE,
    PHASE_OWNED,
    PHASE_PROVISIONING,
    PLURAL_VAULT_ACCESS_KEY,
)
from ..lifecycle.controller import LifecycleController
from ..lifecycle.errors import LifecycleError, RotationFailed
from ..models import ATTRIBUTE_NAMES, ReconciliationState, make_identity
from ..tracing import trace_span
from ..utils.conditions import (
    clear_failure_conditions,
    set_change_rejected_condition,
    set_creation_failed_condition,
    set_drifted_condition,
    set_ready_condition,
    set_rotation_failed_condition,
)
from ..utils.events import (
    emit_access_key_created,
    emit_access_key_deleted,
    emit_access_key_gone,
    emit_access_key_imported,
    emit_drift_detected,
    emit_replacement_started,
    emit_validate_succeeded,
)
from ..utils.rate_limit import handle_rate_limit_error, rate_limit_k8s
from .base import BaseHandler

REFRESH_INTERVAL_SECONDS = float(os.getenv("REFRESH_INTERVAL_SECONDS", "300"))

# Status keys cleared when the key is gone or about to be replaced
KEY_ATTRIBUTES = ("identityKeyID", "identityKeyCreatedAt", "engineKeyID")


def _failure_condition(error: LifecycleError) -> Callable[[list[dict[str, Any]], str], list[dict[str, Any]]]:
    if isinstance(error, RotationFailed):
        return set_rotation_failed_condition
    return lambda conditions, message: set_creation_failed_condition(conditions, message, reason=type(error).__name__)


class VaultAccessKeyHandler(BaseHandler):
    """Handler for VaultAccessKey resources."""

    def __init__(self, controller_factory: Callable[[], LifecycleController] = get_controller):
        """Initialize the handler.

        Args:
            controller_factory: Returns the shared lifecycle controller
        """
        super().__init__(KIND_VAULT_ACCESS_KEY)
        self._controller_factory = controller_factory

    @property
    def controller(self) -> LifecycleController:
        return self._controller_factory()

    def _desired(self, spec: dict[str, Any], meta: dict[str, Any]) -> tuple[str, str]:
        """Validate spec and return (principalName, enginePath)."""
        principal_name = spec.get("principalName")
        engine_path = spec.get("enginePath")

        if not principal_name:
            self.handle_validation_error(meta, "principalName is required")
        if not engine_path:
            self.handle_validation_error(meta, "enginePath is required")
        if ":" in principal_name or ":" in engine_path:
            self.handle_validation_error(meta, "principalName and enginePath must not contain ':'")

        emit_validate_succeeded(meta)
        return principal_name, engine_path

    def _state_status(self, state: ReconciliationState, phase: str) -> dict[str, Any]:
        """Status fields for a state; unset key fields are removed from the status."""
        attributes = state.to_attributes()
        status = {attr: attributes.get(attr) for attr in ATTRIBUTE_NAMES.values()}
        status["phase"] = phase
        return status

    def _checkpoint(self, meta: dict[str, Any]) -> Callable[[ReconciliationState], None]:
        """Write the provisional state to the resource before the secret is shared.

        kopf only applies the handler patch once the handler returns, so the
        record of a freshly created key is written straight to the API.
        """
        name = meta.get("name")
        namespace = meta.get("namespace", "default")

        def checkpoint(state: ReconciliationState) -> None:
            api = client.CustomObjectsApi()
            body = {"status": self._state_status(state, PHASE_PROVISIONING)}
            attempt = 0
            while True:
                try:
                    rate_limit_k8s(api.patch_namespaced_custom_object_status)(
                        group=API_GROUP,
                        version=API_VERSION,
                        namespace=namespace,
                        plural=PLURAL_VAULT_ACCESS_KEY,
                        name=name,
                        body=body,
                        field_manager=FIELD_MANAGER,
                    )
                    metrics.api_call_total.labels(api_type="k8s", operation="patch_status", result="success").inc()
                    break
                except client.exceptions.ApiException as e:
                    metrics.api_call_total.labels(api_type="k8s", operation="patch_status", result="error").inc()
                    if handle_rate_limit_error(e, attempt):
                        attempt += 1
                        continue
                    raise
            self.log_info(
                meta,
                f"Recorded provisional access key {state.identity_key_id}",
                reason="Provisioning",
                identity=state.identity,
            )

        return checkpoint

    def _provision(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> ReconciliationState:
        principal_name, engine_path = self._desired(spec, meta)
        adopt = bool(spec.get("adopt", False))

        try:
            if adopt:
                state = self.controller.import_state(make_identity(engine_path, principal_name))
                emit_access_key_imported(meta, state.identity_key_id)
            else:
                state = self.controller.create(principal_name, engine_path, checkpoint=self._checkpoint(meta))
                emit_access_key_created(meta, state.identity_key_id)
        except LifecycleError as e:
            self.handle_lifecycle_error(meta, status, patch, e, condition_fn=_failure_condition(e))

        self._mark_owned(meta, status, patch, state, "Imported" if adopt else "Created")
        return state

    def _resume_provisioning(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> ReconciliationState:
        """Finish a create whose recorded key was never confirmed as owned."""
        self._desired(spec, meta)
        previous = ReconciliationState.from_attributes({**spec, **status})
        self.log_info(
            meta,
            f"Resuming provisioning of recorded access key {previous.identity_key_id}",
            reason="Provisioning",
        )

        try:
            state = self.controller.resume_create(previous, checkpoint=self._checkpoint(meta))
        except LifecycleError as e:
            self.handle_lifecycle_error(meta, status, patch, e, condition_fn=_failure_condition(e))

        emit_access_key_created(meta, state.identity_key_id)
        self._mark_owned(meta, status, patch, state, "Created")
        return state

    def _mark_owned(
        self,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        state: ReconciliationState,
        verb: str,
    ) -> None:
        conditions = clear_failure_conditions(list(status.get("conditions", [])))
        conditions = set_drifted_condition(conditions, False, "Engine and identity provider use the same key")
        conditions = set_ready_condition(conditions, True, f"Access key {state.identity_key_id} is owned by the engine")
        self.update_resource_status(
            patch,
            meta,
            ready=True,
            status_data={**self._state_status(state, PHASE_OWNED), "conditions": conditions},
        )
        self.log_info(
            meta,
            f"{verb} {state.identity}",
            reason="Owned",
            identity_key_id=state.identity_key_id,
        )

    def create(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Create (or adopt) the managed access key."""
        with trace_span("create_vault_access_key", kind=self.kind, attributes={"vaultaccesskey.name": meta.get("name")}):
            if status.get("identityKeyID") and status.get("phase") == PHASE_OWNED:
                self.log_info(meta, f"Access key {status['identityKeyID']} already owned, skipping create")
                return
            if status.get("identityKeyID") and status.get("phase") == PHASE_PROVISIONING:
                self._resume_provisioning(spec, meta, status, patch)
                return
            self._provision(spec, meta, status, patch)

    def update(
        self,
        old_spec: dict[str, Any] | None,
        new_spec: dict[str, Any] | None,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Refuse changes to principalName and enginePath."""
        old_spec = old_spec or {}
        new_spec = new_spec or {}
        immutable_changed = any(
            old_spec.get(field) != new_spec.get(field) for field in ("principalName", "enginePath")
        )
        if not immutable_changed:
            self.log_info(meta, "Spec change does not affect the managed key")
            return

        try:
            previous = ReconciliationState.from_attributes({**old_spec, **status})
            desired = ReconciliationState.new(new_spec.get("principalName", ""), new_spec.get("enginePath", ""))
            self.controller.update(previous, desired)
        except LifecycleError as e:
            self.handle_lifecycle_error(meta, status, patch, e, condition_fn=set_change_rejected_condition)

    def refresh(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Re-read both systems and replace the key on drift."""
        with trace_span("refresh_vault_access_key", kind=self.kind, attributes={"vaultaccesskey.name": meta.get("name")}):
            if not status.get("identityKeyID"):
                if status.get("phase") in (PHASE_GONE, PHASE_ABSENT):
                    self.log_info(meta, "Re-provisioning access key that disappeared", reason="Reprovision")
                    self._provision(spec, meta, status, patch)
                return

            # A recorded key that was never rotated is not owned yet
            if status.get("phase") == PHASE_PROVISIONING:
                self._resume_provisioning(spec, meta, status, patch)
                return

            previous = ReconciliationState.from_attributes(status)
            try:
                refreshed = self.controller.refresh(previous)
            except LifecycleError as e:
                self.handle_lifecycle_error(meta, status, patch, e)

            if refreshed is None:
                self._mark_gone(meta, status, patch, previous)
                return

            plan = self.controller.plan_check(previous, refreshed)
            conditions = list(status.get("conditions", []))

            if not plan.force_replace:
                conditions = set_drifted_condition(conditions, False, "Engine and identity provider use the same key")
                conditions = set_ready_condition(conditions, True, f"Access key {refreshed.identity_key_id} is owned by the engine")
                self.update_resource_status(
                    patch,
                    meta,
                    ready=True,
                    status_data={**self._state_status(refreshed, PHASE_OWNED), "conditions": conditions},
                )
                return

            metrics.drift_detected_total.labels(kind=self.kind).inc()
            emit_drift_detected(meta, refreshed.identity_key_id, refreshed.engine_key_id)
            self.log_warning(
                meta,
                "Engine uses a different key than the one this resource owns",
                reason="DriftDetected",
                identity_key_id=refreshed.identity_key_id,
                engine_key_id=refreshed.engine_key_id,
            )
            conditions = set_drifted_condition(
                conditions,
                True,
                f"Engine reports key {refreshed.engine_key_id}, expected {refreshed.identity_key_id}",
            )

            if not spec.get("replaceOnDrift", True):
                conditions = set_ready_condition(conditions, False, "Access key drifted", reason="Drifted")
                self.update_resource_status(
                    patch,
                    meta,
                    ready=False,
                    status_data={**self._state_status(refreshed, PHASE_DRIFTED), "conditions": conditions},
                )
                return

            patch.status["conditions"] = conditions
            self._replace(spec, meta, {**status, "conditions": conditions}, patch, refreshed)

    def _mark_gone(
        self,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        previous: ReconciliationState,
    ) -> None:
        emit_access_key_gone(meta, previous.identity_key_id)
        self.log_warning(
            meta,
            f"Access key {previous.identity_key_id} no longer exists, dropping it from status",
            reason="CredentialNotFound",
        )
        conditions = set_ready_condition(
            list(status.get("conditions", [])),
            False,
            f"Access key {previous.identity_key_id} no longer exists at the identity provider",
            reason="CredentialNotFound",
        )
        self.update_resource_status(
            patch,
            meta,
            ready=False,
            status_data={
                **{attr: None for attr in KEY_ATTRIBUTES},
                "phase": PHASE_GONE,
                "conditions": conditions,
            },
        )

    def _replace(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        drifted: ReconciliationState,
    ) -> None:
        """Destroy the drifted key and create a fresh one."""
        emit_replacement_started(meta)
        try:
            self.controller.delete(drifted)
        except LifecycleError as e:
            self.handle_lifecycle_error(
                meta,
                status,
                patch,
                e,
                status_data=self._state_status(drifted, PHASE_DRIFTED),
            )

        patch.status.update({**{attr: None for attr in KEY_ATTRIBUTES}, "phase": PHASE_ABSENT})
        self._provision(spec, meta, status, patch)

    def delete(
        self,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Delete the managed key; the engine config is left as is."""
        key_id = status.get("identityKeyID")
        self.log_info(meta, f"VaultAccessKey {meta.get('name')} is being deleted")

        if key_id and spec.get("principalName") and spec.get("enginePath"):
            state = ReconciliationState.from_attributes({**spec, **status})
            try:
                self.controller.delete(state)
            except LifecycleError as e:
                self.handle_lifecycle_error(meta, status, patch, e)
            emit_access_key_deleted(meta, key_id)

        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = VaultAccessKeyHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_VAULT_ACCESS_KEY)
def handle_vault_access_key_create(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle VaultAccessKey creation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.create(spec, meta, status, patch))


@kopf.on.update(API_GROUP_VERSION, KIND_VAULT_ACCESS_KEY, field="spec")
def handle_vault_access_key_update(
    old: dict[str, Any] | None,
    new: dict[str, Any] | None,
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle VaultAccessKey spec changes (old and new are the spec blocks)."""
    _handler.reconcile_with_metrics(meta, lambda: _handler.update(old, new, meta, status, patch))


@kopf.on.resume(API_GROUP_VERSION, KIND_VAULT_ACCESS_KEY)
@kopf.timer(API_GROUP_VERSION, KIND_VAULT_ACCESS_KEY, interval=REFRESH_INTERVAL_SECONDS, initial_delay=REFRESH_INTERVAL_SECONDS)
def handle_vault_access_key_refresh(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Periodically refresh VaultAccessKey resources and detect drift."""
    _handler.reconcile_with_metrics(meta, lambda: _handler.refresh(spec, meta, status, patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_VAULT_ACCESS_KEY)
def handle_vault_access_key_delete(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle VaultAccessKey deletion."""
    _handler.reconcile_with_metrics(meta, lambda: _handler.delete(spec, meta, status, patch))
