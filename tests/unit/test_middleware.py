"""Unit tests for the middleware in capgate/web/middleware.py."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from capgate.access.gate import AccessGate
from capgate.web.middleware import (
    AccessGateMiddleware,
    ErrorBoundaryMiddleware,
    RequestIDMiddleware,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_app(allowed: str = "*.example.com", debug: bool = False) -> FastAPI:
    """Minimal app with the production middleware stack."""
    app = FastAPI()
    app.add_middleware(AccessGateMiddleware, gate=AccessGate(allowed))
    app.add_middleware(ErrorBoundaryMiddleware, debug=debug)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/api/health")
    async def health() -> str:
        return "OK"

    @app.post("/api/challenge")
    async def challenge() -> dict[str, str]:
        return {"token": "t"}

    @app.get("/api/explode")
    async def explode() -> None:
        msg = "kaboom"
        raise RuntimeError(msg)

    @app.get("/page")
    async def page() -> dict[str, str]:
        return {"page": "ok"}

    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestAccessGateMiddleware:
    async def test_gated_path_denied_without_origin(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.post("/api/challenge")
        assert resp.status_code == 403
        assert resp.json() == {"success": False, "error": "Forbidden"}

    async def test_gated_path_allowed(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.post(
                "/api/challenge", headers={"Origin": "https://a.example.com"}
            )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "https://a.example.com"

    async def test_denied_response_still_has_cors(self) -> None:
        async with _client(_make_app(allowed="*.example.com")) as client:
            resp = await client.post(
                "/api/challenge",
                headers={"Origin": "https://a.example.com", "Referer": "https://evil.com/"},
            )
        # Referer wins for the gate; Origin still drives CORS.
        assert resp.status_code == 403
        assert resp.headers["access-control-allow-origin"] == "https://a.example.com"

    async def test_ungated_path_gets_base_cors(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.get("/page")
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"

    async def test_health_bypasses_gate_and_cors(self) -> None:
        async with _client(_make_app(allowed="")) as client:
            resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert "access-control-allow-methods" not in resp.headers

    async def test_preflight_on_unknown_path(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.options("/nowhere")
        assert resp.status_code == 204

    async def test_denial_logged(self) -> None:
        with patch("capgate.access.gate.logger") as mock_logger:
            async with _client(_make_app()) as client:
                await client.post("/api/challenge", headers={"Origin": "https://evil.com"})
            mock_logger.info.assert_called_once()
            kwargs = mock_logger.info.call_args.kwargs
            assert kwargs["reason"] == "not_allowed"
            assert kwargs["hostname"] == "evil.com"


@pytest.mark.unit
class TestErrorBoundaryMiddleware:
    async def test_unhandled_exception_is_json_500(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.get("/api/explode", headers={"Origin": "https://a.example.com"})
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Internal Server Error"}

    async def test_debug_includes_details(self) -> None:
        async with _client(_make_app(debug=True)) as client:
            resp = await client.get("/api/explode", headers={"Origin": "https://a.example.com"})
        assert resp.json()["details"] == "kaboom"

    async def test_exception_logged(self) -> None:
        with patch("capgate.web.middleware.logger") as mock_logger:
            async with _client(_make_app()) as client:
                await client.get("/api/explode", headers={"Origin": "https://a.example.com"})
            mock_logger.exception.assert_called_once()
            assert mock_logger.exception.call_args.kwargs["path"] == "/api/explode"


@pytest.mark.unit
class TestRequestIDMiddleware:
    async def test_generates_id(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.get("/page")
        assert len(resp.headers["x-request-id"]) == 36

    async def test_echoes_id(self) -> None:
        async with _client(_make_app()) as client:
            resp = await client.get("/page", headers={"X-Request-ID": "req-1"})
        assert resp.headers["x-request-id"] == "req-1"
