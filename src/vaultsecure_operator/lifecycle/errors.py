"""Failure taxonomy of the access key lifecycle."""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for lifecycle failures.

    Every failure names the resource identity and the step it happened at.
    `retryable` separates transient failures, where re-running the whole
    operation may succeed, from violated assumptions that need an operator.
    """

    retryable = False

    def __init__(self, message: str, identity: str, step: str):
        self.identity = identity
        self.step = step
        self.detail = message
        super().__init__(f"[{identity}] {step}: {message}")


class ConflictingCredentialExists(LifecycleError):
    """The principal already has an access key before creation."""


class ProvisioningFailed(LifecycleError):
    """The identity provider could not list or create the access key."""

    retryable = True


class HandoffFailed(LifecycleError):
    """The new key could not be written to the engine.

    The created key is left at the identity provider.
    """


class RotationFailed(LifecycleError):
    """The engine root rotation kept failing until the retry budget ran out."""

    retryable = True

    def __init__(self, message: str, identity: str, step: str, attempts: int, delay: float):
        self.attempts = attempts
        self.delay = delay
        super().__init__(f"{message} (attempts={attempts}, delay={delay:g}s)", identity, step)


class ReconciliationInconsistent(LifecycleError):
    """After rotation the engine and the identity provider disagree."""


class CredentialNotFound(LifecycleError):
    """The tracked key no longer exists at the identity provider."""


class InvalidIdentifierFormat(LifecycleError):
    """An import identifier is not "<enginePath>:<principalName>"."""


class AmbiguousOrMissingCredential(LifecycleError):
    """Import found zero or several access keys for the principal."""


class CredentialMismatch(LifecycleError):
    """Import found a key that is not the one the engine uses."""


class ReadFailed(LifecycleError):
    """Reading the identity provider or the engine failed."""

    retryable = True


class DeletionFailed(LifecycleError):
    """The identity provider refused to delete the key."""

    retryable = True


class UpdateNotSupported(LifecycleError):
    """In-place updates are refused; changes need destroy and create."""
