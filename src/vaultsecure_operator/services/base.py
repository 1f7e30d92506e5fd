"""Capability interfaces for the identity provider and the secret engine."""

from __future__ import annotations

from typing import Iterator, Protocol

from ..models import AccessKeyMetadata, EngineRootConfig, NewAccessKey


class AccessKeyNotFound(Exception):
    """The identity provider has no such access key."""


class EngineNotConfigured(Exception):
    """The secret engine has no root credential configured."""


class IdentityProvider(Protocol):
    """Protocol defining identity provider access key operations."""

    def list_access_keys(self, principal: str) -> Iterator[AccessKeyMetadata]:
        """Lazily iterate every access key of a principal across all pages.

        Each call starts a fresh listing.
        """
        ...

    def create_access_key(self, principal: str) -> NewAccessKey:
        """Create an access key for a principal."""
        ...

    def delete_access_key(self, principal: str, key_id: str) -> None:
        """Delete an access key.

        Raises:
            AccessKeyNotFound: If the key does not exist
        """
        ...


class SecretEngine(Protocol):
    """Protocol defining secret engine root credential operations."""

    def read_root_config(self, engine_path: str) -> EngineRootConfig:
        """Read the root config. The secret is never read back.

        Raises:
            EngineNotConfigured: If no root credential is configured
        """
        ...

    def write_root_config(self, engine_path: str, access_key_id: str, secret: str) -> None:
        """Hand an access key and its secret to the engine."""
        ...

    def rotate_root(self, engine_path: str) -> None:
        """Make the engine replace its root credential with one it generates."""
        ...
