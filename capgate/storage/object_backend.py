"""Metadata-tagged blob backend for the TTL store.

Each record is one object whose expiry sits in the ``expires`` metadata
attribute (epoch milliseconds as a string). Reads check that attribute before
decoding the body. Nothing here deletes expired objects in bulk; a bucket
lifecycle rule does that out of band (see ``capgate.provision``).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog

from capgate.exceptions import StorageError
from capgate.storage.ttl_store import ChallengeRecord
from capgate.utils.timing import Clock, is_expired, now_ms

if TYPE_CHECKING:
    from capgate.storage.object_store import ObjectStore, StoredObject

logger = structlog.get_logger(__name__)

EXPIRES_KEY = "expires"
TOKEN_BODY = b"valid"


def _expires_of(obj: StoredObject) -> int | None:
    raw = obj.metadata.get(EXPIRES_KEY)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _live_expires(obj: StoredObject | None, now: int) -> int | None:
    """Expiry of an object that is still valid at ``now``, else None."""
    if obj is None:
        return None
    expires = _expires_of(obj)
    if expires is None or is_expired(expires, now):
        return None
    return expires


class ObjectChallengeStore:
    """Challenges as JSON blobs in an object store."""

    def __init__(self, objects: ObjectStore, clock: Clock = now_ms) -> None:
        self._objects = objects
        self._clock = clock

    async def store(self, token: str, payload: dict[str, Any], expires: int) -> None:
        body = json.dumps(payload, separators=(",", ":")).encode()
        await self._objects.put(token, body, {EXPIRES_KEY: str(expires)})

    async def read(self, token: str) -> ChallengeRecord | None:
        obj = await self._objects.get(token)
        expires = _live_expires(obj, self._clock())
        if obj is None or expires is None:
            return None
        try:
            payload = json.loads(obj.data)
        except ValueError as exc:
            logger.warning("challenge_object_corrupt", token=token)
            msg = "Corrupt challenge object"
            raise StorageError(msg) from exc
        return ChallengeRecord(token=token, payload=payload, expires=expires)

    async def consume(self, token: str) -> ChallengeRecord | None:
        # Not atomic: two concurrent callers can both read before either
        # deletes. The engine deletes before verifying to keep the window short.
        record = await self.read(token)
        if record is not None:
            await self._objects.delete(token)
        return record

    async def delete(self, token: str) -> None:
        await self._objects.delete(token)

    async def delete_expired(self) -> None:
        """No-op: the bucket lifecycle policy reclaims stale objects."""
        return None


class ObjectTokenStore:
    """Verification tokens as marker objects carrying only an expiry."""

    def __init__(self, objects: ObjectStore, clock: Clock = now_ms) -> None:
        self._objects = objects
        self._clock = clock

    async def store(self, key: str, expires: int) -> None:
        await self._objects.put(key, TOKEN_BODY, {EXPIRES_KEY: str(expires)})

    async def get(self, key: str) -> int | None:
        obj = await self._objects.get(key)
        return _live_expires(obj, self._clock())

    async def delete(self, key: str) -> None:
        await self._objects.delete(key)

    async def delete_expired(self) -> None:
        """No-op: the bucket lifecycle policy reclaims stale objects."""
        return None
