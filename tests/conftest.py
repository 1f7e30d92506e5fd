"""Shared fixtures: in-memory identity provider and secret engine."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest

from vaultsecure_operator.lifecycle.controller import LifecycleController
from vaultsecure_operator.models import AccessKeyMetadata, EngineRootConfig, NewAccessKey
from vaultsecure_operator.services.base import AccessKeyNotFound, EngineNotConfigured
from vaultsecure_operator.utils.retry import RetryPolicy

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeIdentityProvider:
    """IAM-like store of access keys per principal with paginated listing."""

    def __init__(self, page_size: int = 2):
        self.page_size = page_size
        self.keys: dict[str, list[AccessKeyMetadata]] = {}
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.pages_fetched = 0
        self.list_calls = 0
        self.list_error: Exception | None = None
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None
        self._counter = 0

    def _next_key(self) -> AccessKeyMetadata:
        self._counter += 1
        return AccessKeyMetadata(
            key_id=f"AKIAFAKE{self._counter:012d}",
            created_at=BASE_TIME + timedelta(minutes=self._counter),
        )

    def add_key(self, principal: str, key_id: str | None = None) -> AccessKeyMetadata:
        key = self._next_key()
        if key_id is not None:
            key = AccessKeyMetadata(key_id=key_id, created_at=key.created_at)
        self.keys.setdefault(principal, []).append(key)
        return key

    def owner_of(self, key_id: str) -> str | None:
        for principal, keys in self.keys.items():
            if any(key.key_id == key_id for key in keys):
                return principal
        return None

    def key_ids(self, principal: str) -> list[str]:
        return [key.key_id for key in self.keys.get(principal, [])]

    def list_access_keys(self, principal: str) -> Iterator[AccessKeyMetadata]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        keys = list(self.keys.get(principal, []))
        for start in range(0, max(len(keys), 1), self.page_size):
            self.pages_fetched += 1
            yield from keys[start:start + self.page_size]

    def create_access_key(self, principal: str) -> NewAccessKey:
        if self.create_error is not None:
            raise self.create_error
        key = self.add_key(principal)
        self.created.append(key.key_id)
        return NewAccessKey(key_id=key.key_id, created_at=key.created_at, secret=f"secret-{key.key_id}")

    def delete_access_key(self, principal: str, key_id: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        keys = self.keys.get(principal, [])
        remaining = [key for key in keys if key.key_id != key_id]
        if len(remaining) == len(keys):
            raise AccessKeyNotFound(key_id)
        self.keys[principal] = remaining
        self.deleted.append(key_id)


class FakeSecretEngine:
    """Vault AWS engine stand-in that rotates keys at the fake identity provider."""

    def __init__(self, identity_provider: FakeIdentityProvider):
        self.identity_provider = identity_provider
        self.root: dict[str, tuple[str, str]] = {}
        self.rotate_calls = 0
        self.read_calls = 0
        self.rotate_failures = 0
        self.write_error: Exception | None = None
        self.read_error: Exception | None = None
        self.reported_key_override: str | None = None

    def configure(self, engine_path: str, key_id: str, secret: str = "preexisting-secret") -> None:
        self.root[engine_path] = (key_id, secret)

    def read_root_config(self, engine_path: str) -> EngineRootConfig:
        self.read_calls += 1
        if self.read_error is not None:
            raise self.read_error
        if engine_path not in self.root:
            raise EngineNotConfigured(engine_path)
        if self.reported_key_override is not None:
            return EngineRootConfig(access_key_id=self.reported_key_override)
        return EngineRootConfig(access_key_id=self.root[engine_path][0])

    def write_root_config(self, engine_path: str, access_key_id: str, secret: str) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.root[engine_path] = (access_key_id, secret)

    def rotate_root(self, engine_path: str) -> None:
        self.rotate_calls += 1
        if self.rotate_failures > 0:
            self.rotate_failures -= 1
            raise ConnectionError("InvalidClientTokenId: the security token included in the request is invalid")

        old_key_id, _ = self.root[engine_path]
        principal = self.identity_provider.owner_of(old_key_id)
        new_key = self.identity_provider.create_access_key(principal)
        self.identity_provider.delete_access_key(principal, old_key_id)
        self.root[engine_path] = (new_key.key_id, new_key.secret)


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def secret_engine(identity_provider: FakeIdentityProvider) -> FakeSecretEngine:
    return FakeSecretEngine(identity_provider)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def retry_policy(sleeps: list[float]) -> RetryPolicy:
    return RetryPolicy(attempts=5, delay=3.0, sleep=sleeps.append)


@pytest.fixture
def controller(
    identity_provider: FakeIdentityProvider,
    secret_engine: FakeSecretEngine,
    retry_policy: RetryPolicy,
) -> LifecycleController:
    return LifecycleController(identity_provider, secret_engine, retry_policy)
