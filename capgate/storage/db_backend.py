"""Relational backend for the TTL store (SQLModel over an async engine)."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from capgate.exceptions import StorageError
from capgate.models.database import ChallengeRow, TokenRow
from capgate.storage.ttl_store import ChallengeRecord
from capgate.utils.timing import Clock, now_ms

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


@contextmanager
def db_errors(message: str) -> Iterator[None]:
    """Re-raise driver errors as StorageError carrying only ``message``.

    The driver text (SQL, bound parameters) is logged, never propagated.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.warning("db_operation_failed", operation=message, error=str(exc))
        raise StorageError(message) from exc


class DatabaseChallengeStore:
    """Challenges as rows; reads filter ``expires > now`` in SQL."""

    def __init__(self, engine: AsyncEngine, clock: Clock = now_ms) -> None:
        self._engine = engine
        self._clock = clock

    async def store(self, token: str, payload: dict[str, Any], expires: int) -> None:
        with db_errors("Could not store challenge"):
            async with AsyncSession(self._engine) as session:
                await session.merge(ChallengeRow(token=token, payload=payload, expires=expires))
                await session.commit()

    async def read(self, token: str) -> ChallengeRecord | None:
        with db_errors("Could not read challenge"):
            async with AsyncSession(self._engine) as session:
                stmt = select(ChallengeRow).where(
                    col(ChallengeRow.token) == token,
                    col(ChallengeRow.expires) > self._clock(),
                )
                result = await session.execute(stmt)
                row = result.scalars().first()
        if row is None:
            return None
        return ChallengeRecord(token=row.token, payload=dict(row.payload), expires=row.expires)

    async def consume(self, token: str) -> ChallengeRecord | None:
        """Read and delete in one transaction.

        Only the caller whose DELETE actually removed the row gets the record,
        so a challenge can be redeemed once even under concurrent requests.
        """
        now = self._clock()
        with db_errors("Could not consume challenge"):
            async with AsyncSession(self._engine) as session:
                stmt = select(ChallengeRow).where(
                    col(ChallengeRow.token) == token,
                    col(ChallengeRow.expires) > now,
                )
                row = (await session.execute(stmt)).scalars().first()
                if row is None:
                    return None
                record = ChallengeRecord(
                    token=row.token, payload=dict(row.payload), expires=row.expires
                )
                removed = await session.execute(
                    delete(ChallengeRow)
                    .where(col(ChallengeRow.token) == token, col(ChallengeRow.expires) > now)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        if removed.rowcount != 1:
            logger.info("challenge_consume_lost_race", token=token)
            return None
        return record

    async def delete(self, token: str) -> None:
        with db_errors("Could not delete challenge"):
            async with AsyncSession(self._engine) as session:
                await session.execute(
                    delete(ChallengeRow)
                    .where(col(ChallengeRow.token) == token)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()

    async def delete_expired(self) -> int:
        with db_errors("Could not purge expired challenges"):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(
                    delete(ChallengeRow)
                    .where(col(ChallengeRow.expires) <= self._clock())
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        count = result.rowcount or 0
        if count:
            logger.debug("challenges_purged", count=count)
        return count


class DatabaseTokenStore:
    """Verification tokens as rows keyed by ``id:hash``."""

    def __init__(self, engine: AsyncEngine, clock: Clock = now_ms) -> None:
        self._engine = engine
        self._clock = clock

    async def store(self, key: str, expires: int) -> None:
        with db_errors("Could not store token"):
            async with AsyncSession(self._engine) as session:
                await session.merge(TokenRow(key=key, expires=expires))
                await session.commit()

    async def get(self, key: str) -> int | None:
        with db_errors("Could not read token"):
            async with AsyncSession(self._engine) as session:
                stmt = select(TokenRow).where(
                    col(TokenRow.key) == key,
                    col(TokenRow.expires) > self._clock(),
                )
                result = await session.execute(stmt)
                row = result.scalars().first()
        return row.expires if row else None

    async def delete(self, key: str) -> None:
        with db_errors("Could not delete token"):
            async with AsyncSession(self._engine) as session:
                await session.execute(
                    delete(TokenRow)
                    .where(col(TokenRow.key) == key)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()

    async def delete_expired(self) -> int:
        with db_errors("Could not purge expired tokens"):
            async with AsyncSession(self._engine) as session:
                result = await session.execute(
                    delete(TokenRow)
                    .where(col(TokenRow.expires) <= self._clock())
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        count = result.rowcount or 0
        if count:
            logger.debug("tokens_purged", count=count)
        return count
