"""Gateway to the S3-compatible object store holding every uploaded file."""

import asyncio
import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from studious.core.config import Settings
from studious.core.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

SIGNED_URL_ACTIONS = {
    "read": "get_object",
    "write": "put_object",
}

_MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class BlobStore:
    """Thin async wrapper over a boto3 S3 client.

    boto3 is blocking, so every call is pushed to a worker thread.
    """

    def __init__(self, client: Any, bucket_name: str, signed_url_ttl_seconds: int = 300):
        self._client = client
        self.bucket_name = bucket_name
        self.signed_url_ttl_seconds = signed_url_ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "BlobStore":
        client_kwargs = {"region_name": settings.aws_region}
        if settings.aws_access_key_id and settings.aws_secret_access_key:
            client_kwargs["aws_access_key_id"] = settings.aws_access_key_id
            client_kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
        if settings.aws_s3_endpoint_url:
            client_kwargs["endpoint_url"] = settings.aws_s3_endpoint_url
        client = boto3.client("s3", **client_kwargs)
        logger.info(f"Blob store initialized with bucket: {settings.aws_s3_bucket_name}")
        return cls(client, settings.aws_s3_bucket_name, settings.signed_url_ttl_seconds)

    async def put(self, data: bytes, path: str, content_type: str) -> None:
        """Upload ``data`` to ``path`` in one request."""
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket_name,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload object {path}: {e}")
            raise StorageError(f"Failed to upload object {path}") from e
        logger.info(f"Uploaded object {path} ({len(data)} bytes)")

    async def issue_signed_url(self, path: str, action: str = "read", content_type: Optional[str] = None) -> str:
        """Time-limited URL granting ``action`` on one object."""
        operation = SIGNED_URL_ACTIONS.get(action)
        if operation is None:
            raise ValidationError(f"Unsupported signed URL action: {action}")

        params = {"Bucket": self.bucket_name, "Key": path}
        if action == "write" and content_type:
            params["ContentType"] = content_type

        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                operation,
                Params=params,
                ExpiresIn=self.signed_url_ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to sign {action} URL for {path}: {e}")
            raise StorageError(f"Failed to sign URL for {path}") from e

    async def delete_object(self, path: str) -> None:
        """Delete one object. Deleting a missing object succeeds."""
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket_name, Key=path)
        except ClientError as e:
            if _error_code(e) in _MISSING_OBJECT_CODES:
                logger.info(f"Object already absent: {path}")
                return
            raise StorageError(f"Failed to delete object {path}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to delete object {path}: {e}") from e
        logger.info(f"Deleted object {path}")

    async def object_exists(self, path: str) -> bool:
        try:
            await asyncio.to_thread(self._client.head_object, Bucket=self.bucket_name, Key=path)
        except ClientError as e:
            if _error_code(e) in _MISSING_OBJECT_CODES:
                return False
            raise StorageError(f"Failed to check object {path}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to check object {path}: {e}") from e
        return True

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            close()
