"""S3 object store adapter.

Implements :class:`IObjectStore` over a single bucket with ``boto3``.  The
boto3 client is synchronous, so each call runs on a worker thread under the
configured timeout.  ``endpoint_url`` allows MinIO or LocalStack.
"""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from knowledge_base.config.settings import Settings
from knowledge_base.interfaces.object_store import IObjectStore
from knowledge_base.utils.concurrency import run_blocking
from knowledge_base.utils.errors import ConfigurationError, ObjectStoreError

logger = structlog.get_logger(logger_name=__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
# S3 delete_objects accepts at most 1000 keys per request.
_DELETE_BATCH = 1000


class S3ObjectStore(IObjectStore):
    """Object store backed by one S3 bucket."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        client: Any | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        if not bucket:
            raise ConfigurationError(message="S3 bucket name is required", provider_name="s3")
        self._bucket = bucket
        self._region = region
        self._timeout = timeout
        if client is None:
            client_kwargs: dict[str, Any] = {"region_name": region}
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("s3", **client_kwargs)
        self._s3_client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> S3ObjectStore:
        return cls(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url or None,
            timeout=settings.external_call_timeout,
        )

    async def _call(self, operation: str, func: Any, **kwargs: Any) -> Any:
        try:
            return await run_blocking(func, timeout=self._timeout, **kwargs)
        except asyncio.TimeoutError as exc:
            raise ObjectStoreError(
                message=f"S3 {operation} timed out after {self._timeout}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except (ClientError, BotoCoreError) as exc:
            raise ObjectStoreError(
                message=f"S3 {operation} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    # ------------------------------------------------------------------
    # IObjectStore implementation
    # ------------------------------------------------------------------

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        kwargs: dict[str, Any] = {"Bucket": self._bucket, "Key": key, "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type
        await self._call("put_object", self._s3_client.put_object, **kwargs)
        logger.debug("s3_put", key=key, size=len(data))

    async def get(self, key: str) -> bytes | None:
        """Return the object body, or ``None`` when the key does not exist."""
        try:
            response = await run_blocking(
                self._s3_client.get_object,
                Bucket=self._bucket,
                Key=key,
                timeout=self._timeout,
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                return None
            raise ObjectStoreError(
                message=f"S3 get_object failed: {e}",
                provider_name=self.get_provider_name(),
            ) from e
        except asyncio.TimeoutError as exc:
            raise ObjectStoreError(
                message=f"S3 get_object timed out after {self._timeout}s",
                provider_name=self.get_provider_name(),
            ) from exc
        return await run_blocking(response["Body"].read, timeout=self._timeout)

    async def delete(self, key: str) -> None:
        await self._call("delete_object", self._s3_client.delete_object, Bucket=self._bucket, Key=key)
        logger.debug("s3_delete", key=key)

    async def list(self, prefix: str) -> list[str]:
        """List keys under *prefix*, following continuation tokens."""
        keys: list[str] = []
        kwargs: dict[str, Any] = {"Bucket": self._bucket, "Prefix": prefix}
        while True:
            page = await self._call("list_objects_v2", self._s3_client.list_objects_v2, **kwargs)
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
            if not page.get("IsTruncated"):
                break
            kwargs["ContinuationToken"] = page["NextContinuationToken"]
        return keys

    async def delete_prefix(self, prefix: str) -> int:
        """Delete everything under *prefix* with batched ``delete_objects`` calls."""
        keys = await self.list(prefix)
        for start in range(0, len(keys), _DELETE_BATCH):
            batch = keys[start : start + _DELETE_BATCH]
            await self._call(
                "delete_objects",
                self._s3_client.delete_objects,
                Bucket=self._bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
        logger.info("s3_delete_prefix", prefix=prefix, deleted=len(keys))
        return len(keys)

    def get_provider_name(self) -> str:
        return "s3"
