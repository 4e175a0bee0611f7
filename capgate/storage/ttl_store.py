"""TTL-bounded storage interface for challenges and verification tokens.

Two backends implement these protocols:

* the object backend (``capgate.storage.object_backend``) keeps each record
  as a blob with its expiry in object metadata and leaves physical cleanup
  to a bucket lifecycle rule;
* the database backend (``capgate.storage.db_backend``) keeps rows with an
  indexed ``expires`` column and purges them with a bulk delete.

Whatever the backend, ``read``/``get`` never return a record whose expiry is
at or before the current time. ``delete_expired`` is an optimization and
callers must not rely on its return value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from capgate.config.settings import Settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChallengeRecord:
    token: str
    payload: dict[str, Any]
    expires: int  # epoch milliseconds


@runtime_checkable
class ChallengeStore(Protocol):
    async def store(self, token: str, payload: dict[str, Any], expires: int) -> None:
        """Insert or replace a challenge. Raises StorageError on failure."""
        ...

    async def read(self, token: str) -> ChallengeRecord | None:
        """Return the challenge, or None if missing or expired."""
        ...

    async def consume(self, token: str) -> ChallengeRecord | None:
        """Read and delete a challenge for redemption."""
        ...

    async def delete(self, token: str) -> None:
        """Delete a challenge. Deleting a missing key is not an error."""
        ...

    async def delete_expired(self) -> int | None:
        """Purge expired challenges; None when cleanup is delegated elsewhere."""
        ...


@runtime_checkable
class TokenStore(Protocol):
    async def store(self, key: str, expires: int) -> None:
        """Insert or replace a token. Raises StorageError on failure."""
        ...

    async def get(self, key: str) -> int | None:
        """Return the token's expiry, or None if missing or expired."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a token. Deleting a missing key is not an error."""
        ...

    async def delete_expired(self) -> int | None:
        """Purge expired tokens; None when cleanup is delegated elsewhere."""
        ...


@dataclass(frozen=True)
class TTLStore:
    challenges: ChallengeStore
    tokens: TokenStore


def create_ttl_store(settings: Settings) -> TTLStore:
    """Factory: build the configured backend for both resource kinds."""
    if settings.storage_backend == "database":
        from capgate.storage.database import create_engine
        from capgate.storage.db_backend import DatabaseChallengeStore, DatabaseTokenStore

        engine = create_engine(settings)
        logger.info("ttl_store_created", backend="database")
        return TTLStore(
            challenges=DatabaseChallengeStore(engine),
            tokens=DatabaseTokenStore(engine),
        )

    from capgate.storage.object_backend import ObjectChallengeStore, ObjectTokenStore
    from capgate.storage.object_store import create_object_store

    logger.info("ttl_store_created", backend="object", s3=settings.use_s3)
    return TTLStore(
        challenges=ObjectChallengeStore(create_object_store(settings, "challenges")),
        tokens=ObjectTokenStore(create_object_store(settings, "tokens")),
    )
