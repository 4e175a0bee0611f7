"""ASGI middleware: request IDs, the top-level error boundary, and the access gate."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from capgate.exceptions import AccessDeniedError, CapGateError

if TYPE_CHECKING:
    from starlette.requests import Request

    from capgate.access.gate import AccessGate

logger = structlog.get_logger(__name__)

HEALTH_PATH = "/api/health"


def error_response(exc: CapGateError, headers: dict[str, str] | None = None) -> JSONResponse:
    """Render an application error as the standard failure body."""
    return JSONResponse(
        {"success": False, "error": str(exc)},
        status_code=exc.status_code,
        headers=headers,
    )


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Adds a unique X-Request-ID header to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response


class ErrorBoundaryMiddleware(BaseHTTPMiddleware):
    """Turns any unhandled exception into a ``{success: false}`` JSON 500.

    Exception details are only included when ``debug`` is set.
    """

    def __init__(self, app: object, debug: bool = False) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._debug = debug

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("unhandled_error", method=request.method, path=request.url.path)
            content: dict[str, object] = {"success": False, "error": "Internal Server Error"}
            if self._debug:
                content["details"] = str(exc)
            return JSONResponse(content, status_code=500)


class AccessGateMiddleware(BaseHTTPMiddleware):
    """Answers CORS preflights, enforces the origin gate, and attaches CORS headers.

    Preflight requests are answered before any path check. The health
    endpoint bypasses both the gate and CORS.
    """

    def __init__(self, app: object, gate: AccessGate) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._gate = gate

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        cors = self._gate.cors_headers(request.headers)
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=cors)

        path = request.url.path
        if path == HEALTH_PATH:
            return await call_next(request)

        decision = self._gate.decide(path, request.headers)
        if not decision.allowed:
            return error_response(AccessDeniedError("Forbidden"), headers=cors)

        response = await call_next(request)
        for key, value in cors.items():
            response.headers[key] = value
        return response
