"""Abstract object store interface: blobs with string metadata."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from capgate.config.settings import Settings


@dataclass(frozen=True)
class StoredObject:
    data: bytes
    metadata: dict[str, str] = field(default_factory=dict)


class ObjectStore(ABC):
    """Abstract base class for object/blob storage."""

    @abstractmethod
    async def put(self, key: str, data: bytes, metadata: dict[str, str] | None = None) -> None:
        """Store binary data and its metadata at the given key."""

    @abstractmethod
    async def get(self, key: str) -> StoredObject | None:
        """Retrieve an object by key. Returns None if not found."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete the object at the given key. Missing keys are ignored."""


def create_object_store(settings: Settings, kind: Literal["challenges", "tokens"]) -> ObjectStore:
    """Factory: create the ObjectStore holding one resource kind."""
    if settings.use_s3:
        from capgate.storage.s3_store import S3ObjectStore

        bucket = (
            settings.s3_challenges_bucket if kind == "challenges" else settings.s3_tokens_bucket
        )
        return S3ObjectStore(
            bucket=bucket,
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            region=settings.s3_region,
        )

    from pathlib import Path

    from capgate.storage.local_store import LocalObjectStore

    return LocalObjectStore(base_dir=Path(settings.storage_dir).expanduser() / kind)
