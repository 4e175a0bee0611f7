"""Catch-all asset routes with pretty-URL fallbacks."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request, Response

from capgate.web.assets import AssetResponse, AssetStore  # noqa: TC001
from capgate.web.dependencies import get_assets

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["assets"])

LANDING_PATHS = frozenset({"/", "/landing.html"})
LANDING_ASSET = "/demo/landing"


async def fetch_pretty(assets: AssetStore, path: str) -> AssetResponse:
    """Fetch ``path``, retrying extensionless paths with ``.html`` on 404.

    ``/`` and ``/landing.html`` map to the demo landing page.
    """
    if path in LANDING_PATHS:
        path = LANDING_ASSET
    resp = await assets.fetch(path)
    if resp.status == 404 and not path.endswith("/") and not PurePosixPath(path).suffix:
        fallback = await assets.fetch(f"{path}.html")
        if fallback.status != 404:
            resp = fallback
    return resp


@router.api_route("/{asset_path:path}", methods=["GET", "HEAD"], include_in_schema=False)
async def serve_asset(
    request: Request, assets: Annotated[AssetStore, Depends(get_assets)]
) -> Response:
    resp = await fetch_pretty(assets, request.url.path)
    status = resp.status
    if resp.is_redirect:
        # Callers never see a redirect; the body is served as-is.
        logger.debug("asset_redirect_flattened", path=request.url.path, upstream_status=status)
        status = 200
    headers = {k: v for k, v in resp.headers.items() if k.lower() != "location"}
    return Response(content=resp.body, status_code=status, headers=headers)
