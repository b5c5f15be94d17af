"""Object storage backends.

The pipeline only needs two capabilities from storage: putting an object
and listing keys under a prefix. ``S3Storage`` talks to S3 (or any
S3-compatible endpoint) through boto3; ``InMemoryStorage`` keeps objects
in a dict for tests and local runs.
"""

import asyncio
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from pushdeploy.config import Settings, get_settings
from pushdeploy.core.exceptions import StorageConfigurationError
from pushdeploy.utils.logging import get_logger

logger = get_logger("storage")

# ClientError codes that mean the service itself is misconfigured
CONFIGURATION_ERROR_CODES = frozenset(
    {
        "AccessDenied",
        "AllAccessDisabled",
        "InvalidAccessKeyId",
        "InvalidBucketName",
        "NoSuchBucket",
        "SignatureDoesNotMatch",
        "AuthorizationHeaderMalformed",
        "PermanentRedirect",
    }
)


class ObjectStorage(Protocol):
    """Storage capability used by the pipeline."""

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str,
        public: bool = False,
    ) -> None: ...

    async def list_objects(self, prefix: str = "") -> list[str]: ...


@dataclass
class StoredObject:
    """An object held by :class:`InMemoryStorage`."""

    body: bytes
    content_type: str
    public: bool = False


class InMemoryStorage:
    """Dict-backed storage."""

    def __init__(self):
        self.objects: dict[str, StoredObject] = {}

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str,
        public: bool = False,
    ) -> None:
        self.objects[key] = StoredObject(
            body=bytes(body), content_type=content_type, public=public
        )

    async def list_objects(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self.objects if k.startswith(prefix))


class S3Storage:
    """S3 bucket storage via boto3.

    boto3 is synchronous, so every call is pushed to a worker thread to keep
    the event loop responsive while uploads are in flight.
    """

    def __init__(self, settings: Settings, client: Any | None = None):
        self.bucket = settings.s3_bucket_name
        self.public_read = settings.s3_public_read
        self._client = client or boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
            endpoint_url=settings.s3_endpoint_url,
        )

    async def put_object(
        self,
        key: str,
        body: bytes,
        content_type: str,
        public: bool = False,
    ) -> None:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": body,
            "ContentType": content_type,
        }
        if public and self.public_read:
            params["ACL"] = "public-read"

        await self._call("put_object", **params)

    async def list_objects(self, prefix: str = "") -> list[str]:
        keys: list[str] = []
        token: str | None = None

        while True:
            params: dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
            if token:
                params["ContinuationToken"] = token

            response = await self._call("list_objects_v2", **params)
            keys.extend(item["Key"] for item in response.get("Contents", []))

            if not response.get("IsTruncated"):
                return keys
            token = response.get("NextContinuationToken")

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        if not self.bucket:
            raise StorageConfigurationError("S3 bucket name is not configured")

        method = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except NoCredentialsError as e:
            raise StorageConfigurationError(
                "AWS credentials are not configured",
                {"operation": operation, "error": str(e)},
            ) from e
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in CONFIGURATION_ERROR_CODES:
                logger.error(
                    "storage.misconfigured",
                    operation=operation,
                    bucket=self.bucket,
                    code=code,
                )
                raise StorageConfigurationError(
                    f"S3 rejected {operation} on bucket '{self.bucket}': {code}",
                    {"operation": operation, "code": code},
                ) from e
            raise
        except BotoCoreError:
            logger.exception("storage.call_failed", operation=operation)
            raise


@lru_cache
def get_storage() -> ObjectStorage:
    """Get the process-wide storage backend."""
    return S3Storage(get_settings())
