"""Builders for the process-wide identity provider, secret engine and controller."""

from __future__ import annotations

import logging
import os

from kubernetes import client, config

from ..constants import DEFAULT_ROTATION_RETRY_ATTEMPTS, DEFAULT_ROTATION_RETRY_DELAY_SECONDS
from ..lifecycle.controller import LifecycleController
from ..services.aws.client import IAMIdentityProvider
from ..services.vault.client import VaultSecretEngine
from ..utils.retry import RetryPolicy
from ..utils.secrets import get_secret_value

logger = logging.getLogger(__name__)

_controller: LifecycleController | None = None


def load_kube_config() -> None:
    """Load in-cluster config, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def create_identity_provider() -> IAMIdentityProvider:
    """Create the IAM identity provider from environment configuration.

    Credentials come from the standard AWS credential chain.
    """
    return IAMIdentityProvider(
        region=os.getenv("AWS_REGION") or None,
        iam_endpoint=os.getenv("IAM_ENDPOINT") or None,
        connect_timeout=float(os.getenv("AWS_CONNECT_TIMEOUT", "10")),
        read_timeout=float(os.getenv("AWS_READ_TIMEOUT", "30")),
    )


def resolve_vault_token(api: client.CoreV1Api | None = None) -> str | None:
    """Resolve the Vault token from a Kubernetes secret or VAULT_TOKEN.

    Raises:
        ValueError: If the referenced secret or key does not exist
    """
    secret_name = os.getenv("VAULT_TOKEN_SECRET_NAME")
    if secret_name:
        namespace = os.getenv("VAULT_TOKEN_SECRET_NAMESPACE", "default")
        key = os.getenv("VAULT_TOKEN_SECRET_KEY", "token")
        if api is None:
            load_kube_config()
            api = client.CoreV1Api()
        return get_secret_value(api, namespace, secret_name, key)
    return os.getenv("VAULT_TOKEN") or None


def create_secret_engine(api: client.CoreV1Api | None = None) -> VaultSecretEngine:
    """Create the Vault secret engine client from environment configuration.

    Raises:
        ValueError: If VAULT_ADDR is not set
    """
    url = os.getenv("VAULT_ADDR")
    if not url:
        raise ValueError("VAULT_ADDR is required")

    return VaultSecretEngine(
        url=url,
        token=resolve_vault_token(api),
        namespace=os.getenv("VAULT_NAMESPACE") or None,
        verify=os.getenv("VAULT_SKIP_VERIFY", "false").lower() != "true",
        timeout=float(os.getenv("VAULT_TIMEOUT", "30")),
    )


def create_retry_policy() -> RetryPolicy:
    """Create the rotation retry policy from environment configuration."""
    return RetryPolicy(
        attempts=int(os.getenv("ROTATION_RETRY_ATTEMPTS", str(DEFAULT_ROTATION_RETRY_ATTEMPTS))),
        delay=float(os.getenv("ROTATION_RETRY_DELAY_SECONDS", str(DEFAULT_ROTATION_RETRY_DELAY_SECONDS))),
    )


def init_controller(controller: LifecycleController | None = None) -> LifecycleController:
    """Build the shared controller once; handlers reuse it for every resource."""
    global _controller
    _controller = controller or LifecycleController(
        identity_provider=create_identity_provider(),
        secret_engine=create_secret_engine(),
        retry_policy=create_retry_policy(),
    )
    logger.info("Lifecycle controller initialized")
    return _controller


def get_controller() -> LifecycleController:
    """Return the shared controller, building it on first use."""
    if _controller is None:
        return init_controller()
    return _controller


def reset_controller() -> None:
    """Drop the shared controller (used on shutdown and in tests)."""
    global _controller
    _controller = None
