"""HashiCorp Vault AWS secrets engine implementation."""

from __future__ import annotations

import logging
import time
from typing import Any

import hvac
from hvac.exceptions import InvalidPath, VaultError

from ... import metrics
from ...models import EngineRootConfig
from ...utils.rate_limit import rate_limit_vault
from ..base import EngineNotConfigured

logger = logging.getLogger(__name__)


class VaultSecretEngine:
    """Root credential operations on a Vault AWS secrets engine mount."""

    def __init__(
        self,
        url: str | None = None,
        token: str | None = None,
        namespace: str | None = None,
        verify: bool = True,
        timeout: float = 30.0,
        client: hvac.Client | None = None,
    ) -> None:
        """Initialize the Vault secret engine client.

        Args:
            url: Vault address
            token: Vault token
            namespace: Optional Vault Enterprise namespace
            verify: Verify TLS certificates
            timeout: Request timeout in seconds
            client: Pre-built hvac client, mostly for tests
        """
        self.client = client or hvac.Client(
            url=url,
            token=token,
            namespace=namespace,
            verify=verify,
            timeout=timeout,
        )

    def _call(self, operation: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        start_time = time.time()
        result = "error"
        try:
            response = rate_limit_vault(fn)(*args, **kwargs)
            result = "success"
            return response
        finally:
            metrics.api_call_total.labels(api_type="vault", operation=operation, result=result).inc()
            metrics.api_call_duration_seconds.labels(api_type="vault", operation=operation).observe(
                time.time() - start_time
            )

    def is_authenticated(self) -> bool:
        """Check the configured token is accepted by Vault."""
        return bool(self.client.is_authenticated())

    def read_root_config(self, engine_path: str) -> EngineRootConfig:
        """Read the access key ID the engine currently uses.

        Raises:
            EngineNotConfigured: If the mount has no root config
        """
        path = f"{engine_path.strip('/')}/config/root"
        try:
            response = self._call("read_root_config", self.client.read, path)
        except InvalidPath as e:
            raise EngineNotConfigured(f"No root config at {path}") from e
        except VaultError as e:
            logger.error(f"Failed to read root config at {path}: {e}")
            raise

        access_key_id = ((response or {}).get("data") or {}).get("access_key")
        if not access_key_id:
            raise EngineNotConfigured(f"No access key configured at {path}")
        return EngineRootConfig(access_key_id=access_key_id)

    def write_root_config(self, engine_path: str, access_key_id: str, secret: str) -> None:
        """Write the root IAM credentials of the engine."""
        try:
            self._call(
                "write_root_config",
                self.client.secrets.aws.configure_root_iam_credentials,
                access_key=access_key_id,
                secret_key=secret,
                mount_point=engine_path.strip("/"),
            )
        except VaultError as e:
            logger.error(f"Failed to write root config for engine {engine_path}: {e}")
            raise

    def rotate_root(self, engine_path: str) -> None:
        """Ask the engine to rotate its root IAM credentials."""
        try:
            self._call(
                "rotate_root",
                self.client.secrets.aws.rotate_root_iam_credentials,
                mount_point=engine_path.strip("/"),
            )
        except VaultError as e:
            logger.warning(f"Failed to rotate root credentials for engine {engine_path}: {e}")
            raise
