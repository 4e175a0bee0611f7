"""S3/R2-compatible object store implementation via aiobotocore."""

from __future__ import annotations

from typing import Any

import structlog
from aiobotocore.session import get_session
from botocore.exceptions import ClientError

from capgate.exceptions import StorageError
from capgate.storage.object_store import ObjectStore, StoredObject

logger = structlog.get_logger(__name__)

_BUCKET_EXISTS_CODES = frozenset({"BucketAlreadyOwnedByYou", "BucketAlreadyExists"})


class S3ObjectStore(ObjectStore):
    """Object store backed by S3-compatible storage (AWS S3, Cloudflare R2, MinIO).

    Metadata is written as S3 user metadata (``x-amz-meta-*``), so it comes
    back with the object headers on ``get``.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        region: str = "auto",
    ) -> None:
        self._bucket = bucket
        self._region = region
        self._session = get_session()
        self._config: dict[str, Any] = {
            "region_name": region,
        }
        if endpoint_url:
            self._config["endpoint_url"] = endpoint_url
        if access_key_id:
            self._config["aws_access_key_id"] = access_key_id
        if secret_access_key:
            self._config["aws_secret_access_key"] = secret_access_key

    @property
    def bucket(self) -> str:
        return self._bucket

    async def put(self, key: str, data: bytes, metadata: dict[str, str] | None = None) -> None:
        """Upload data with user metadata."""
        async with self._session.create_client("s3", **self._config) as client:
            try:
                await client.put_object(
                    Bucket=self._bucket, Key=key, Body=data, Metadata=metadata or {}
                )
            except ClientError as exc:
                logger.warning("s3_request_failed", op="put", key=key, bucket=self._bucket)
                msg = "S3 put failed"
                raise StorageError(msg) from exc
        logger.debug("s3_put", key=key, size=len(data), bucket=self._bucket)

    async def get(self, key: str) -> StoredObject | None:
        """Download an object and its metadata. Returns None if not found."""
        async with self._session.create_client("s3", **self._config) as client:
            try:
                resp = await client.get_object(Bucket=self._bucket, Key=key)
                async with resp["Body"] as stream:
                    data: bytes = await stream.read()
            except client.exceptions.NoSuchKey:
                return None
            except ClientError as exc:
                logger.warning("s3_request_failed", op="get", key=key, bucket=self._bucket)
                msg = "S3 get failed"
                raise StorageError(msg) from exc
            return StoredObject(data=data, metadata=dict(resp.get("Metadata") or {}))

    async def delete(self, key: str) -> None:
        """Delete an object. S3 treats deleting a missing key as success."""
        async with self._session.create_client("s3", **self._config) as client:
            try:
                await client.delete_object(Bucket=self._bucket, Key=key)
            except ClientError as exc:
                logger.warning("s3_request_failed", op="delete", key=key, bucket=self._bucket)
                msg = "S3 delete failed"
                raise StorageError(msg) from exc

    async def ensure_bucket(self, expire_days: int) -> None:
        """Create the bucket if needed and install an expiry lifecycle rule.

        The lifecycle rule is what physically removes stale challenges and
        tokens; reads already hide them once their expiry passes.
        """
        async with self._session.create_client("s3", **self._config) as client:
            params: dict[str, Any] = {"Bucket": self._bucket}
            if self._region not in ("auto", "us-east-1"):
                params["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
            try:
                await client.create_bucket(**params)
                logger.info("s3_bucket_created", bucket=self._bucket)
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") not in _BUCKET_EXISTS_CODES:
                    msg = f"Could not create bucket {self._bucket}"
                    raise StorageError(msg) from exc
                logger.info("s3_bucket_exists", bucket=self._bucket)

            await client.put_bucket_lifecycle_configuration(
                Bucket=self._bucket,
                LifecycleConfiguration={
                    "Rules": [
                        {
                            "ID": "capgate-expire",
                            "Status": "Enabled",
                            "Filter": {"Prefix": ""},
                            "Expiration": {"Days": expire_days},
                        }
                    ]
                },
            )
            logger.info("s3_lifecycle_set", bucket=self._bucket, expire_days=expire_days)
