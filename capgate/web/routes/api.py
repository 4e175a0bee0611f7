"""Challenge API routes: health, issue, redeem, and token validation."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from capgate.engine.cap import ChallengeEngine  # noqa: TC001 - FastAPI resolves at runtime
from capgate.exceptions import BadRequestError, EngineError
from capgate.web.dependencies import get_engine

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

EngineDep = Annotated[ChallengeEngine, Depends(get_engine)]


@contextmanager
def engine_errors(operation: str) -> Iterator[None]:
    """Re-raise anything the engine (or its storage) throws as EngineError."""
    try:
        yield
    except EngineError:
        raise
    except Exception as exc:
        logger.exception("engine_failed", operation=operation)
        raise EngineError(str(exc) or "Challenge engine failure") from exc


async def _json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        msg = "Invalid JSON body"
        raise BadRequestError(msg) from exc
    if not isinstance(body, dict):
        msg = "Invalid JSON body"
        raise BadRequestError(msg)
    return body


@router.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "OK"


@router.post("/challenge")
async def create_challenge(engine: EngineDep) -> dict[str, Any]:
    with engine_errors("create_challenge"):
        return await engine.create_challenge()


@router.post("/redeem")
async def redeem_challenge(request: Request, engine: EngineDep) -> dict[str, Any]:
    body = await _json_object(request)
    token = body.get("token")
    solutions = body.get("solutions")
    if not token or not solutions:
        msg = "Missing parameters"
        raise BadRequestError(msg)
    if not isinstance(token, str) or not isinstance(solutions, list):
        msg = "Invalid parameters"
        raise BadRequestError(msg)
    with engine_errors("redeem_challenge"):
        return await engine.redeem_challenge(token, solutions)


@router.post("/validate")
@router.post("/verify")
async def validate_token(request: Request, engine: EngineDep) -> dict[str, Any]:
    """Server-to-server token check; the token is kept for later checks."""
    body = await _json_object(request)
    with engine_errors("validate_token"):
        return await engine.validate_token(body.get("token"), keep_token=True)
