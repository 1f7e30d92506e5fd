"""Lifecycle controller for an IAM access key owned by a Vault AWS secrets engine.

The controller drives both systems into a state where the engine's active root
key and the identity provider's active key for the principal are the same key:

    Absent -> Provisioning -> Owned <-> Drifted
                                 \\-> Gone (key deleted outside the controller)

Every operation re-reads both systems; nothing is cached between calls.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator

from .. import metrics
from ..constants import IDENTIFIER_SEPARATOR
from ..models import AccessKeyMetadata, NewAccessKey, ReconciliationState, format_rfc3339
from ..services.base import AccessKeyNotFound, EngineNotConfigured, IdentityProvider, SecretEngine
from ..tracing import trace_span
from ..utils.errors import sanitize_exception
from ..utils.retry import RetryExhausted, RetryPolicy
from .errors import (
    AmbiguousOrMissingCredential,
    ConflictingCredentialExists,
    CredentialMismatch,
    CredentialNotFound,
    DeletionFailed,
    HandoffFailed,
    InvalidIdentifierFormat,
    LifecycleError,
    ProvisioningFailed,
    ReadFailed,
    ReconciliationInconsistent,
    RotationFailed,
    UpdateNotSupported,
)

Checkpoint = Callable[[ReconciliationState], None]

# Fields a forced replacement leaves for the next create to compute
UNRESOLVED_ON_REPLACE = ("identity_key_id", "identity_key_created_at", "engine_key_id")


class PlanAction(str, Enum):
    """Outcome of a plan check."""

    NO_ACTION = "noAction"
    FORCE_REPLACE = "forceReplace"


@dataclass(frozen=True)
class PlanResult:
    """Plan check decision and the (possibly updated) proposed state."""

    action: PlanAction
    proposed: ReconciliationState | None
    requires_replace: tuple[str, ...] = ()

    @property
    def force_replace(self) -> bool:
        return self.action is PlanAction.FORCE_REPLACE


class LifecycleController:
    """Create, refresh, plan-check, delete and import one managed credential."""

    def __init__(
        self,
        identity_provider: IdentityProvider,
        secret_engine: SecretEngine,
        retry_policy: RetryPolicy | None = None,
    ):
        """Initialize the controller.

        Args:
            identity_provider: Access key operations (e.g. IAM)
            secret_engine: Root credential operations (e.g. Vault AWS engine)
            retry_policy: Policy around root rotation, defaults to 5 attempts 3s apart
        """
        self.identity_provider = identity_provider
        self.secret_engine = secret_engine
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def _operation(self, operation: str, identity: str) -> Iterator[None]:
        with trace_span(f"lifecycle.{operation}", attributes={"vaultsecure.identity": identity}):
            try:
                yield
            except LifecycleError as e:
                metrics.lifecycle_operations_total.labels(operation=operation, result=type(e).__name__).inc()
                self.logger.error(f"{operation} failed: {sanitize_exception(e)}")
                raise
            except Exception:
                metrics.lifecycle_operations_total.labels(operation=operation, result="error").inc()
                raise
            metrics.lifecycle_operations_total.labels(operation=operation, result="success").inc()

    # Create

    def create(
        self,
        principal_name: str,
        engine_path: str,
        checkpoint: Checkpoint | None = None,
    ) -> ReconciliationState:
        """Create a key, hand it to the engine and let the engine rotate it.

        Args:
            principal_name: Identity provider principal that will own the key
            engine_path: Mount path of the secret engine
            checkpoint: Called with the provisional state after the key exists
                and before its secret is shared, so a crash leaves a record of
                the orphaned key

        Returns:
            Reconciled state where identity_key_id == engine_key_id

        Raises:
            ConflictingCredentialExists: The principal already has a key
            ProvisioningFailed: Listing or creating the key failed
            HandoffFailed: Writing the key to the engine failed
            RotationFailed: Rotation kept failing
            ReconciliationInconsistent: Engine and identity provider disagree afterwards
        """
        state = ReconciliationState.new(principal_name, engine_path)

        with self._operation("create", state.identity):
            self._ensure_no_access_keys(state)

            new_key = self._create_access_key(state)
            state = state.evolve(
                identity_key_id=new_key.key_id,
                identity_key_created_at=format_rfc3339(new_key.created_at),
            )
            if checkpoint is not None:
                checkpoint(state)

            self._hand_off(state, new_key)
            # the secret must not outlive the hand-off
            del new_key

            return self._take_ownership(state, "create")

    def _ensure_no_access_keys(self, state: ReconciliationState) -> None:
        try:
            existing = next(iter(self.identity_provider.list_access_keys(state.principal_name)), None)
        except Exception as e:
            raise ProvisioningFailed(
                f"could not list existing access keys: {sanitize_exception(e)}",
                state.identity,
                "check existing keys",
            ) from e

        if existing is not None:
            raise ConflictingCredentialExists(
                f"principal {state.principal_name} already has access key {existing.key_id}; "
                "the key must be created by this resource and rotated by the engine",
                state.identity,
                "check existing keys",
            )

    def _create_access_key(self, state: ReconciliationState) -> NewAccessKey:
        try:
            new_key = self.identity_provider.create_access_key(state.principal_name)
        except Exception as e:
            raise ProvisioningFailed(
                f"could not create access key: {sanitize_exception(e)}",
                state.identity,
                "create key",
            ) from e
        self.logger.info(f"Created access key {new_key.key_id} for {state.principal_name}")
        return new_key

    def _hand_off(self, state: ReconciliationState, new_key: NewAccessKey) -> None:
        try:
            self.secret_engine.write_root_config(state.engine_path, new_key.key_id, new_key.secret)
        except Exception as e:
            raise HandoffFailed(
                f"could not write access key {new_key.key_id} to the engine; "
                f"the key is left at the identity provider: {sanitize_exception(e)}",
                state.identity,
                "hand off key",
            ) from e
        self.logger.info(f"Handed access key {new_key.key_id} to engine {state.engine_path}")

    def resume_create(self, state: ReconciliationState, checkpoint: Checkpoint | None = None) -> ReconciliationState:
        """Finish a create that stopped after its key was recorded.

        The recorded key's secret passed through this process, so it is never
        accepted without a rotation. If the engine still holds a key of the
        principal (the recorded one, or one an earlier rotation switched to),
        the engine rotates again and the result is adopted. Otherwise the
        recorded key is deleted and a fresh create runs.

        Raises:
            ReadFailed: Either system could not be read
            DeletionFailed: The recorded key could not be deleted
            RotationFailed: Rotation kept failing
            ReconciliationInconsistent: Engine and identity provider disagree afterwards
        """
        with self._operation("resume", state.identity):
            try:
                engine_key_id: str | None = self.secret_engine.read_root_config(state.engine_path).access_key_id
            except EngineNotConfigured:
                engine_key_id = None
            except Exception as e:
                raise ReadFailed(
                    f"could not read engine root config: {sanitize_exception(e)}",
                    state.identity,
                    "resume read engine key",
                ) from e

            try:
                principal_keys = {key.key_id for key in self.identity_provider.list_access_keys(state.principal_name)}
            except Exception as e:
                raise ReadFailed(
                    f"could not list access keys: {sanitize_exception(e)}",
                    state.identity,
                    "resume list identity keys",
                ) from e

            if engine_key_id is not None and engine_key_id in principal_keys:
                self.logger.info(f"Engine {state.engine_path} holds access key {engine_key_id}, rotating again")
                return self._take_ownership(state.evolve(identity_key_id=engine_key_id), "resume")

        self.logger.info(
            f"Engine {state.engine_path} holds no access key of {state.principal_name}, "
            f"replacing recorded key {state.identity_key_id}"
        )
        self.delete(state)
        return self.create(state.principal_name, state.engine_path, checkpoint=checkpoint)

    # Ownership: rotate, adopt, confirm

    def _take_ownership(self, state: ReconciliationState, operation: str) -> ReconciliationState:
        """Force a rotation and adopt the key the engine rotated to."""
        self._rotate(state, operation)

        try:
            engine_key_id = self.secret_engine.read_root_config(state.engine_path).access_key_id
        except EngineNotConfigured as e:
            raise ReconciliationInconsistent(
                "engine has no root credential after rotation",
                state.identity,
                "adopt rotated key",
            ) from e
        except Exception as e:
            raise ReadFailed(
                f"could not read rotated key from the engine: {sanitize_exception(e)}",
                state.identity,
                "adopt rotated key",
            ) from e

        # The engine, not this controller, decides which key is active now
        adopted = state.evolve(
            identity_key_id=engine_key_id,
            identity_key_created_at=None,
            engine_key_id=None,
        )

        # IAM may not list the rotated key right away
        try:
            refreshed = self.retry_policy.call(lambda: self._refresh_state(adopted)).value
        except RetryExhausted as e:
            if isinstance(e.last_error, CredentialNotFound):
                raise ReconciliationInconsistent(
                    f"engine key {engine_key_id} is not listed by the identity provider "
                    f"after {e.attempts} attempts",
                    state.identity,
                    "confirm ownership",
                ) from e
            raise e.last_error or e

        if not refreshed.in_sync:
            raise ReconciliationInconsistent(
                f"engine reports key {refreshed.engine_key_id} but key {refreshed.identity_key_id} was adopted",
                state.identity,
                "confirm ownership",
            )

        self.logger.info(f"Engine {state.engine_path} owns access key {refreshed.identity_key_id}")
        return refreshed

    def _rotate(self, state: ReconciliationState, operation: str) -> int:
        try:
            result = self.retry_policy.call(lambda: self.secret_engine.rotate_root(state.engine_path))
        except RetryExhausted as e:
            metrics.rotation_attempts.labels(operation=operation).observe(e.attempts)
            raise RotationFailed(
                f"engine root rotation failed: {sanitize_exception(e.last_error) if e.last_error else e}",
                state.identity,
                "rotate root",
                attempts=e.attempts,
                delay=e.delay,
            ) from e

        metrics.rotation_attempts.labels(operation=operation).observe(result.attempts)
        self.logger.info(f"Rotated root credential of engine {state.engine_path} after {result.attempts} attempt(s)")
        return result.attempts

    # Refresh

    def refresh(self, state: ReconciliationState) -> ReconciliationState | None:
        """Re-read both systems.

        Drift is reported through engine_key_id, never corrected here.

        Returns:
            Updated state, or None when the key no longer exists at the
            identity provider and the resource should be dropped

        Raises:
            ReadFailed: Either system could not be read
        """
        with self._operation("refresh", state.identity):
            try:
                return self._refresh_state(state)
            except CredentialNotFound as e:
                self.logger.warning(f"Resource gone: {e.detail}")
                return None

    def _refresh_state(self, state: ReconciliationState) -> ReconciliationState:
        key = self._find_access_key(state)

        try:
            engine_key_id: str | None = self.secret_engine.read_root_config(state.engine_path).access_key_id
        except EngineNotConfigured:
            # Surfaces as drift on the next plan check
            engine_key_id = None
        except Exception as e:
            raise ReadFailed(
                f"could not read engine root config: {sanitize_exception(e)}",
                state.identity,
                "refresh engine key",
            ) from e

        return state.evolve(
            identity_key_created_at=format_rfc3339(key.created_at),
            engine_key_id=engine_key_id,
        )

    def _find_access_key(self, state: ReconciliationState) -> AccessKeyMetadata:
        """Page through the principal's keys until the tracked one shows up."""
        if state.identity_key_id is not None:
            try:
                for key in self.identity_provider.list_access_keys(state.principal_name):
                    if key.key_id == state.identity_key_id:
                        return key
            except Exception as e:
                raise ReadFailed(
                    f"could not list access keys: {sanitize_exception(e)}",
                    state.identity,
                    "refresh identity key",
                ) from e

        raise CredentialNotFound(
            f"access key {state.identity_key_id} was not found for principal {state.principal_name}",
            state.identity,
            "refresh identity key",
        )

    # Plan check

    def plan_check(
        self,
        previous: ReconciliationState | None,
        proposed: ReconciliationState | None,
    ) -> PlanResult:
        """Decide whether the proposed state can be kept or must be replaced.

        A key mismatch forces full replacement: the controller cannot know if
        the engine's current secret works, only a fresh create and rotation
        re-establishes a verified credential.
        """
        if previous is None or proposed is None:
            return PlanResult(PlanAction.NO_ACTION, proposed)

        if proposed.identity_key_id == proposed.engine_key_id:
            return PlanResult(PlanAction.NO_ACTION, proposed)

        self.logger.info(
            f"The access key managed by {proposed.identity} ({proposed.identity_key_id}) "
            f"is no longer the one configured in the engine ({proposed.engine_key_id})"
        )
        unresolved = proposed.evolve(**{name: None for name in UNRESOLVED_ON_REPLACE})
        return PlanResult(PlanAction.FORCE_REPLACE, unresolved, requires_replace=("engine_key_id",))

    # Delete

    def delete(self, state: ReconciliationState) -> None:
        """Delete the tracked key at the identity provider.

        An already absent key counts as deleted. The engine config is left
        untouched.

        Raises:
            DeletionFailed: The identity provider refused the deletion
        """
        with self._operation("delete", state.identity):
            if state.identity_key_id is None:
                self.logger.info(f"No access key recorded for {state.identity}, nothing to delete")
                return

            try:
                self.identity_provider.delete_access_key(state.principal_name, state.identity_key_id)
            except AccessKeyNotFound:
                self.logger.info(f"Access key {state.identity_key_id} already absent")
                return
            except Exception as e:
                raise DeletionFailed(
                    f"could not delete access key {state.identity_key_id}: {sanitize_exception(e)}",
                    state.identity,
                    "delete key",
                ) from e

            self.logger.info(f"Deleted access key {state.identity_key_id} of {state.principal_name}")

    # Import

    def import_state(self, identifier: str) -> ReconciliationState:
        """Adopt an existing engine/identity provider pairing.

        The key's secret may have been exposed before import, so ownership is
        only accepted after a forced rotation.

        Args:
            identifier: "<enginePath>:<principalName>"

        Raises:
            InvalidIdentifierFormat: Identifier is malformed
            AmbiguousOrMissingCredential: Principal has zero or several keys
            CredentialMismatch: The principal's key is not the engine's key
            RotationFailed: Rotation kept failing
        """
        parts = identifier.split(IDENTIFIER_SEPARATOR)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise InvalidIdentifierFormat(
                f"expected import identifier in the format '<enginePath>:<principalName>', got '{identifier}'",
                identifier,
                "parse identifier",
            )
        engine_path, principal_name = parts
        state = ReconciliationState(identity=identifier, principal_name=principal_name, engine_path=engine_path)

        with self._operation("import", state.identity):
            try:
                engine_key_id = self.secret_engine.read_root_config(engine_path).access_key_id
            except EngineNotConfigured as e:
                raise AmbiguousOrMissingCredential(
                    "engine has no root credential configured",
                    state.identity,
                    "read engine key",
                ) from e
            except Exception as e:
                raise ReadFailed(
                    f"could not read engine root config: {sanitize_exception(e)}",
                    state.identity,
                    "read engine key",
                ) from e
            state = state.evolve(engine_key_id=engine_key_id)

            try:
                keys = list(self.identity_provider.list_access_keys(principal_name))
            except Exception as e:
                raise ReadFailed(
                    f"could not list access keys: {sanitize_exception(e)}",
                    state.identity,
                    "list identity keys",
                ) from e

            if len(keys) != 1:
                raise AmbiguousOrMissingCredential(
                    f"principal {principal_name} has {len(keys)} access keys, expected exactly one",
                    state.identity,
                    "list identity keys",
                )
            key = keys[0]
            if key.key_id != engine_key_id:
                raise CredentialMismatch(
                    f"principal key {key.key_id} is not the engine key {engine_key_id}",
                    state.identity,
                    "match keys",
                )

            state = state.evolve(
                identity_key_id=key.key_id,
                identity_key_created_at=format_rfc3339(key.created_at),
            )
            return self._take_ownership(state, "import")

    # Update

    def update(self, previous: ReconciliationState, desired: ReconciliationState) -> None:
        """Refuse in-place updates; principal and engine path changes need replacement.

        Raises:
            UpdateNotSupported: Always
        """
        changed = [
            name
            for name in ("principal_name", "engine_path")
            if getattr(previous, name) != getattr(desired, name)
        ]
        raise UpdateNotSupported(
            f"in-place update is not supported (changed: {', '.join(changed) or 'none'}); "
            "delete and recreate the resource instead",
            previous.identity,
            "update",
        )
