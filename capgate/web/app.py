"""FastAPI application factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request

from capgate.access.gate import AccessGate
from capgate.config.logging import setup_logging
from capgate.config.settings import Settings, get_settings
from capgate.exceptions import CapGateError
from capgate.web.assets import create_asset_store
from capgate.web.middleware import (
    AccessGateMiddleware,
    ErrorBoundaryMiddleware,
    RequestIDMiddleware,
    error_response,
)
from capgate.web.routes.api import router as api_router
from capgate.web.routes.assets import router as assets_router

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse

    from capgate.engine.cap import ChallengeEngine
    from capgate.web.assets import AssetStore

logger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    engine: ChallengeEngine | None = None,
    assets: AssetStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``settings`` defaults to the environment. ``engine`` and ``assets`` default
    to what the settings describe.
    """
    settings = settings or get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    if engine is None:
        from capgate.engine.cap import CapEngine
        from capgate.storage.ttl_store import create_ttl_store

        engine = CapEngine.from_settings(settings, create_ttl_store(settings))
    if assets is None:
        assets = create_asset_store(settings)

    app = FastAPI(
        title="capgate",
        description="Origin-gated proof-of-work challenge service",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.assets = assets

    @app.exception_handler(CapGateError)
    async def capgate_error_handler(request: Request, exc: CapGateError) -> JSONResponse:
        logger.info(
            "request_failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            status=exc.status_code,
        )
        return error_response(exc)

    # Last added runs first: request ID, error boundary, then the gate.
    gate = AccessGate.from_settings(settings)
    app.add_middleware(AccessGateMiddleware, gate=gate)
    app.add_middleware(ErrorBoundaryMiddleware, debug=settings.debug)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(api_router)
    # Catch-all; must stay last.
    app.include_router(assets_router)

    logger.info(
        "app_created",
        storage_backend=settings.storage_backend,
        allowlist_size=len(gate.patterns),
        assets=assets is not None,
    )
    return app
