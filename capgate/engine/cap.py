"""Proof-of-work challenge engine speaking the Cap widget protocol.

The engine only talks to storage through ``TTLStore``; which backend sits
behind it is decided by configuration.
"""

from __future__ import annotations

import hashlib
import secrets
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from capgate.engine.prng import prng
from capgate.utils.timing import Clock, now_ms, timed

if TYPE_CHECKING:
    from capgate.config.settings import Settings
    from capgate.storage.ttl_store import TTLStore

logger = structlog.get_logger(__name__)


class ChallengeEngine(Protocol):
    async def create_challenge(self) -> dict[str, Any]: ...

    async def redeem_challenge(self, token: str, solutions: list[Any]) -> dict[str, Any]: ...

    async def validate_token(self, token: Any, keep_token: bool = False) -> dict[str, Any]: ...


def _sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


class CapEngine:
    """Issues challenges, verifies solutions, and tracks verification tokens."""

    def __init__(
        self,
        store: TTLStore,
        *,
        challenge_ttl: int = 300,
        token_ttl: int = 330,
        challenge_count: int = 50,
        challenge_size: int = 32,
        challenge_difficulty: int = 4,
        clock: Clock = now_ms,
    ) -> None:
        self._store = store
        self._challenge_ttl_ms = challenge_ttl * 1000
        self._token_ttl_ms = token_ttl * 1000
        self._count = challenge_count
        self._size = challenge_size
        self._difficulty = challenge_difficulty
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, store: TTLStore) -> CapEngine:
        return cls(
            store,
            challenge_ttl=settings.challenge_ttl,
            token_ttl=settings.token_ttl,
            challenge_count=settings.challenge_count,
            challenge_size=settings.challenge_size,
            challenge_difficulty=settings.challenge_difficulty,
        )

    async def create_challenge(self) -> dict[str, Any]:
        await self.cleanup()

        token = secrets.token_hex(25)
        params = {"c": self._count, "s": self._size, "d": self._difficulty}
        expires = self._clock() + self._challenge_ttl_ms
        await self._store.challenges.store(token, params, expires)
        logger.info("challenge_created", expires=expires)
        return {"challenge": params, "token": token, "expires": expires}

    async def redeem_challenge(self, token: str, solutions: list[Any]) -> dict[str, Any]:
        record = await self._store.challenges.consume(token)
        if record is None:
            logger.info("challenge_redeem_expired")
            return {"success": False, "message": "Challenge expired"}

        with timed("verify_solutions"):
            valid = self._verify(token, record.payload, solutions)
        if not valid:
            logger.info("challenge_redeem_invalid")
            return {"success": False, "message": "Invalid solution"}

        vertoken = secrets.token_hex(15)
        token_id = secrets.token_hex(8)
        expires = self._clock() + self._token_ttl_ms
        await self._store.tokens.store(f"{token_id}:{_sha256_hex(vertoken)}", expires)
        logger.info("challenge_redeemed", token_id=token_id, expires=expires)
        return {"success": True, "token": f"{token_id}:{vertoken}", "expires": expires}

    async def validate_token(self, token: Any, keep_token: bool = False) -> dict[str, Any]:
        if not isinstance(token, str) or token.count(":") != 1:
            return {"success": False}
        token_id, vertoken = token.split(":")
        if not token_id or not vertoken:
            return {"success": False}

        key = f"{token_id}:{_sha256_hex(vertoken)}"
        expires = await self._store.tokens.get(key)
        if expires is None:
            logger.info("token_rejected", token_id=token_id)
            return {"success": False}
        if not keep_token:
            await self._store.tokens.delete(key)
        logger.info("token_validated", token_id=token_id, kept=keep_token)
        return {"success": True}

    async def cleanup(self) -> None:
        """Opportunistically purge expired records; failures are only logged."""
        try:
            await self._store.challenges.delete_expired()
            await self._store.tokens.delete_expired()
        except Exception as exc:
            logger.warning("ttl_cleanup_failed", error=str(exc))

    def _verify(self, token: str, params: dict[str, Any], solutions: list[Any]) -> bool:
        count = int(params.get("c", 0))
        size = int(params.get("s", 0))
        difficulty = int(params.get("d", 0))
        if not isinstance(solutions, list) or count <= 0 or len(solutions) != count:
            return False

        for index, solution in enumerate(solutions, start=1):
            if isinstance(solution, bool) or not isinstance(solution, (int, str)):
                return False
            salt = prng(f"{token}{index}", size)
            target = prng(f"{token}{index}d", difficulty)
            if not _sha256_hex(f"{salt}{solution}").startswith(target):
                return False
        return True
