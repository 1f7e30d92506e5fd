"""AWS IAM identity provider implementation."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterator

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ... import metrics
from ...models import AccessKeyMetadata, NewAccessKey
from ...utils.rate_limit import rate_limit_iam
from ..base import AccessKeyNotFound

logger = logging.getLogger(__name__)


class IAMIdentityProvider:
    """Access key operations against AWS IAM (or an IAM compatible endpoint)."""

    def __init__(
        self,
        region: str | None = None,
        iam_endpoint: str | None = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        client: Any = None,
    ) -> None:
        """Initialize the IAM identity provider.

        Args:
            region: AWS region (defaults to the SDK credential chain's region)
            iam_endpoint: Optional IAM endpoint URL
            connect_timeout: Connect timeout in seconds
            read_timeout: Read timeout in seconds
            client: Pre-built boto3 IAM client, mostly for tests
        """
        if client is not None:
            self.iam_client = client
            return

        config = Config(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            # Rotation has its own retry loop; keep SDK retries for throttling only
            retries={"max_attempts": 3, "mode": "standard"},
        )
        # boto3 clients are thread-safe and shared by every resource
        self.iam_client = boto3.client(
            "iam",
            endpoint_url=iam_endpoint,
            region_name=region,
            config=config,
        )

    def _observe(self, operation: str, result: str, start_time: float) -> None:
        metrics.api_call_total.labels(api_type="iam", operation=operation, result=result).inc()
        metrics.api_call_duration_seconds.labels(api_type="iam", operation=operation).observe(
            time.time() - start_time
        )

    def list_access_keys(self, principal: str) -> Iterator[AccessKeyMetadata]:
        """Lazily iterate all access keys of a user.

        Pages are only fetched as the caller consumes the iterator, so a
        lookup that finds its key early stops paging.

        Args:
            principal: IAM user name

        Yields:
            Access key metadata
        """
        paginator = self.iam_client.get_paginator("list_access_keys")
        pages = paginator.paginate(UserName=principal)
        page_iter = iter(pages)

        while True:
            start_time = time.time()
            try:
                page = rate_limit_iam(next)(page_iter)
            except StopIteration:
                return
            except ClientError as e:
                self._observe("list_access_keys", "error", start_time)
                logger.error(f"Failed to list access keys for user {principal}: {e}")
                raise
            self._observe("list_access_keys", "success", start_time)

            for key in page.get("AccessKeyMetadata", []):
                yield AccessKeyMetadata(key_id=key["AccessKeyId"], created_at=key["CreateDate"])

    def create_access_key(self, principal: str) -> NewAccessKey:
        """Create an access key for a user.

        Args:
            principal: IAM user name

        Returns:
            The new key including its secret
        """
        start_time = time.time()
        try:
            response = rate_limit_iam(self.iam_client.create_access_key)(UserName=principal)
        except ClientError as e:
            self._observe("create_access_key", "error", start_time)
            logger.error(f"Failed to create access key for user {principal}: {e}")
            raise
        self._observe("create_access_key", "success", start_time)

        key = response["AccessKey"]
        return NewAccessKey(
            key_id=key["AccessKeyId"],
            created_at=key["CreateDate"],
            secret=key["SecretAccessKey"],
        )

    def delete_access_key(self, principal: str, key_id: str) -> None:
        """Delete an access key.

        Args:
            principal: IAM user name
            key_id: Access key ID to delete

        Raises:
            AccessKeyNotFound: If IAM reports NoSuchEntity
        """
        start_time = time.time()
        try:
            rate_limit_iam(self.iam_client.delete_access_key)(UserName=principal, AccessKeyId=key_id)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "NoSuchEntity":
                self._observe("delete_access_key", "not_found", start_time)
                raise AccessKeyNotFound(f"Access key {key_id} not found for user {principal}") from e
            self._observe("delete_access_key", "error", start_time)
            logger.error(f"Failed to delete access key {key_id}: {e}")
            raise
        self._observe("delete_access_key", "success", start_time)
