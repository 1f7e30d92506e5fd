"""Models for the managed access key pairing."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from .constants import IDENTIFIER_SEPARATOR

# Flat outward attribute names, in the order they are serialized
ATTRIBUTE_NAMES = {
    "identity": "id",
    "principal_name": "principalName",
    "identity_key_id": "identityKeyID",
    "identity_key_created_at": "identityKeyCreatedAt",
    "engine_path": "enginePath",
    "engine_key_id": "engineKeyID",
}


def make_identity(engine_path: str, principal_name: str) -> str:
    """Build the composite "<enginePath>:<principalName>" identifier."""
    return f"{engine_path}{IDENTIFIER_SEPARATOR}{principal_name}"


def format_rfc3339(value: datetime) -> str:
    """Format a timestamp as RFC3339 in UTC with second precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class AccessKeyMetadata:
    """An access key as listed by the identity provider."""

    key_id: str
    created_at: datetime


@dataclass(frozen=True)
class NewAccessKey:
    """A freshly created access key including its secret.

    Only ever held for the duration of a single hand-off. The secret is
    excluded from repr and comparisons so it cannot end up in logs.
    """

    key_id: str
    created_at: datetime
    secret: str = field(repr=False, compare=False)


@dataclass(frozen=True)
class EngineRootConfig:
    """Root credential config as reported by the secret engine (no secret)."""

    access_key_id: str


@dataclass(frozen=True)
class ReconciliationState:
    """Persisted view of one managed credential.

    `identity` is derived from engine path and principal once, on creation.
    A fully reconciled state has identity_key_id == engine_key_id.
    """

    identity: str
    principal_name: str
    engine_path: str
    identity_key_id: str | None = None
    identity_key_created_at: str | None = None
    engine_key_id: str | None = None

    @classmethod
    def new(cls, principal_name: str, engine_path: str) -> ReconciliationState:
        """Start a state for a principal and engine path."""
        return cls(
            identity=make_identity(engine_path, principal_name),
            principal_name=principal_name,
            engine_path=engine_path,
        )

    @property
    def in_sync(self) -> bool:
        """Whether the engine uses the key this state tracks."""
        return self.identity_key_id is not None and self.identity_key_id == self.engine_key_id

    def evolve(self, **changes: Any) -> ReconciliationState:
        """Return a copy with some fields changed. `identity` cannot change."""
        if "identity" in changes:
            raise ValueError("identity is immutable once set")
        return replace(self, **changes)

    def to_attributes(self) -> dict[str, str]:
        """Serialize to flat string-keyed attributes, omitting unset fields."""
        return {
            ATTRIBUTE_NAMES[name]: value
            for name, value in asdict(self).items()
            if value is not None
        }

    @classmethod
    def from_attributes(cls, attributes: dict[str, Any]) -> ReconciliationState:
        """Parse flat attributes (e.g. a resource status block).

        Raises:
            ValueError: If principalName or enginePath is missing
        """
        values = {name: attributes.get(attr) or None for name, attr in ATTRIBUTE_NAMES.items()}
        if not values["principal_name"] or not values["engine_path"]:
            raise ValueError("principalName and enginePath are required")
        if not values["identity"]:
            values["identity"] = make_identity(values["engine_path"], values["principal_name"])
        return cls(**values)
