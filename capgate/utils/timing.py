"""Clock and timing helpers."""

from __future__ import annotations

import time
from collections.abc import Callable
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Generator

logger = structlog.get_logger(__name__)

# Returns the current time as integer epoch milliseconds.
Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def is_expired(expires: int, now: int) -> bool:
    """A record expiring at or before ``now`` is no longer valid."""
    return expires <= now


@contextmanager
def timed(label: str) -> Generator[dict[str, float], None, None]:
    """Context manager that measures elapsed wall-clock time.

    Usage::

        with timed("verify_solutions") as t:
            ok = verify()
        print(t["elapsed"])  # seconds as float
    """
    result: dict[str, float] = {"elapsed": 0.0}
    start = time.monotonic()
    try:
        yield result
    finally:
        result["elapsed"] = time.monotonic() - start
        logger.debug("timed", label=label, elapsed_seconds=result["elapsed"])
