"""Shared test fixtures."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

import capgate.models.database  # noqa: F401 - registers tables
from capgate.config.settings import Settings
from capgate.engine.prng import prng
from capgate.web.app import create_app
from capgate.web.assets import LocalAssetStore

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingEngine:
    """Challenge engine double that records calls and returns canned results."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.error: Exception | None = None

    async def create_challenge(self) -> dict[str, Any]:
        self.calls.append(("create_challenge", ()))
        if self.error:
            raise self.error
        return {"challenge": {"c": 1, "s": 32, "d": 4}, "token": "tok", "expires": 1}

    async def redeem_challenge(self, token: str, solutions: list[Any]) -> dict[str, Any]:
        self.calls.append(("redeem_challenge", (token, solutions)))
        return {"success": True, "token": "id:vt", "expires": 2}

    async def validate_token(self, token: Any, keep_token: bool = False) -> dict[str, Any]:
        self.calls.append(("validate_token", (token, keep_token)))
        return {"success": token == "id:vt"}


def solve(token: str, count: int, size: int, difficulty: int) -> list[int]:
    """Brute-force solutions the way the browser widget does."""
    solutions = []
    for index in range(1, count + 1):
        salt = prng(f"{token}{index}", size)
        target = prng(f"{token}{index}d", difficulty)
        nonce = 0
        while not hashlib.sha256(f"{salt}{nonce}".encode()).hexdigest().startswith(target):
            nonce += 1
        solutions.append(nonce)
    return solutions


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def solver():
    return solve


@pytest.fixture()
def public_dir(tmp_path: Path) -> Path:
    """A small asset tree: widget script, demo landing page, and a pretty-URL page."""
    root = tmp_path / "public"
    (root / "widget").mkdir(parents=True)
    (root / "demo").mkdir()
    (root / "widget" / "widget.js").write_text("console.log('cap');")
    (root / "demo" / "landing.html").write_text("<h1>landing</h1>")
    (root / "about.html").write_text("<h1>about</h1>")
    return root


@pytest.fixture()
def engine_double() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture()
def make_app(engine_double: RecordingEngine, public_dir: Path):
    """Build an app with the recording engine and local assets."""

    def _make(allowed: str = "*.example.com", **overrides: Any):
        settings = Settings(allowed=allowed, **overrides)
        return create_app(settings, engine=engine_double, assets=LocalAssetStore(public_dir))

    return _make


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with the TTL tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()
