"""Database backend specifics: bulk purge and SQL-side expiry filtering."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from capgate.exceptions import StorageError
from capgate.models.database import ChallengeRow, TokenRow
from capgate.storage.db_backend import DatabaseChallengeStore, DatabaseTokenStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


async def _count(engine: AsyncEngine, model: type) -> int:
    async with AsyncSession(engine) as session:
        result = await session.execute(select(model))
        return len(result.scalars().all())


@pytest.mark.unit
class TestDatabaseChallengeStore:
    async def test_expired_row_stays_until_purged(self, async_engine: AsyncEngine, clock) -> None:
        store = DatabaseChallengeStore(async_engine, clock)
        await store.store("tok", {"c": 1}, clock.now + 100)
        clock.advance(200)
        assert await store.read("tok") is None
        assert await _count(async_engine, ChallengeRow) == 1

    async def test_delete_expired_returns_count(self, async_engine: AsyncEngine, clock) -> None:
        store = DatabaseChallengeStore(async_engine, clock)
        await store.store("a", {"c": 1}, clock.now + 100)
        await store.store("b", {"c": 1}, clock.now + 100)
        await store.store("c", {"c": 1}, clock.now + 10_000)
        clock.advance(100)
        assert await store.delete_expired() == 2
        assert await _count(async_engine, ChallengeRow) == 1
        assert await store.delete_expired() == 0

    async def test_payload_round_trips_as_json(self, async_engine: AsyncEngine, clock) -> None:
        store = DatabaseChallengeStore(async_engine, clock)
        payload = {"c": 50, "s": 32, "d": 4, "extra": ["x", 1]}
        await store.store("tok", payload, clock.now + 100)
        record = await store.read("tok")
        assert record is not None
        assert record.payload == payload

    async def test_consume_removes_row(self, async_engine: AsyncEngine, clock) -> None:
        store = DatabaseChallengeStore(async_engine, clock)
        await store.store("tok", {"c": 1}, clock.now + 100)
        assert await store.consume("tok") is not None
        assert await _count(async_engine, ChallengeRow) == 0


@pytest.mark.unit
class TestDatabaseTokenStore:
    async def test_delete_expired_returns_count(self, async_engine: AsyncEngine, clock) -> None:
        store = DatabaseTokenStore(async_engine, clock)
        await store.store("a:1", clock.now + 100)
        await store.store("b:2", clock.now + 10_000)
        clock.advance(150)
        assert await store.delete_expired() == 1
        assert await _count(async_engine, TokenRow) == 1
        assert await store.get("b:2") == clock.now - 150 + 10_000

    async def test_store_upserts_expiry(self, async_engine: AsyncEngine, clock) -> None:
        store = DatabaseTokenStore(async_engine, clock)
        await store.store("a:1", clock.now + 100)
        await store.store("a:1", clock.now + 500)
        assert await store.get("a:1") == clock.now + 500
        assert await _count(async_engine, TokenRow) == 1


@pytest.fixture()
async def bare_engine():
    """In-memory SQLite engine without any tables."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    yield engine
    await engine.dispose()


@pytest.mark.unit
class TestDriverErrors:
    @pytest.mark.parametrize(
        ("operation", "message"),
        [
            (lambda s: s.store("tok", {"c": 1}, 10), "Could not store challenge"),
            (lambda s: s.read("tok"), "Could not read challenge"),
            (lambda s: s.consume("tok"), "Could not consume challenge"),
            (lambda s: s.delete("tok"), "Could not delete challenge"),
            (lambda s: s.delete_expired(), "Could not purge expired challenges"),
        ],
    )
    async def test_challenge_ops_raise_storage_error(
        self, bare_engine: AsyncEngine, clock, operation, message: str
    ) -> None:
        store = DatabaseChallengeStore(bare_engine, clock)
        with pytest.raises(StorageError) as exc_info:
            await operation(store)
        assert str(exc_info.value) == message

    @pytest.mark.parametrize(
        ("operation", "message"),
        [
            (lambda s: s.store("a:1", 10), "Could not store token"),
            (lambda s: s.get("a:1"), "Could not read token"),
            (lambda s: s.delete("a:1"), "Could not delete token"),
            (lambda s: s.delete_expired(), "Could not purge expired tokens"),
        ],
    )
    async def test_token_ops_raise_storage_error(
        self, bare_engine: AsyncEngine, clock, operation, message: str
    ) -> None:
        store = DatabaseTokenStore(bare_engine, clock)
        with pytest.raises(StorageError) as exc_info:
            await operation(store)
        assert str(exc_info.value) == message
