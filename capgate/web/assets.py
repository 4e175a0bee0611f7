"""Static asset sources: a local directory or an upstream HTTP origin."""

from __future__ import annotations

import asyncio
import mimetypes
import pathlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import structlog

if TYPE_CHECKING:
    from capgate.config.settings import Settings

logger = structlog.get_logger(__name__)

# Hop-by-hop and length headers that must not be copied from upstream.
_DROP_HEADERS = frozenset(
    {"connection", "content-encoding", "content-length", "keep-alive", "transfer-encoding"}
)


@dataclass
class AssetResponse:
    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400


NOT_FOUND = AssetResponse(status=404, body=b"Not Found", headers={"content-type": "text/plain"})


class AssetStore(ABC):
    """Where widget scripts and demo pages come from."""

    @abstractmethod
    async def fetch(self, path: str) -> AssetResponse:
        """Fetch the asset at a URL path such as ``/widget/widget.js``."""


class LocalAssetStore(AssetStore):
    """Serves files from a directory; directories resolve to ``index.html``."""

    def __init__(self, root: pathlib.Path) -> None:
        self._root = root.resolve()

    def _resolve(self, path: str) -> pathlib.Path | None:
        candidate = (self._root / path.lstrip("/")).resolve()
        if not candidate.is_relative_to(self._root):
            logger.warning("asset_path_traversal", path=path)
            return None
        if candidate.is_dir():
            candidate = candidate / "index.html"
        return candidate if candidate.is_file() else None

    async def fetch(self, path: str) -> AssetResponse:
        file_path = self._resolve(path)
        if file_path is None:
            return NOT_FOUND
        body = await asyncio.to_thread(file_path.read_bytes)
        content_type, _ = mimetypes.guess_type(file_path.name)
        return AssetResponse(
            status=200,
            body=body,
            headers={"content-type": content_type or "application/octet-stream"},
        )


class HttpAssetStore(AssetStore):
    """Proxies assets from an upstream origin without following redirects."""

    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    async def fetch(self, path: str) -> AssetResponse:
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._timeout, follow_redirects=False
        ) as client:
            resp = await client.get(f"{self._base_url}{path}")
        headers = {k: v for k, v in resp.headers.items() if k.lower() not in _DROP_HEADERS}
        logger.debug("asset_fetched", path=path, status=resp.status_code)
        return AssetResponse(status=resp.status_code, body=resp.content, headers=headers)


def create_asset_store(settings: Settings) -> AssetStore | None:
    """Factory: the configured asset source, or None if none is bound."""
    if settings.assets_url:
        return HttpAssetStore(settings.assets_url)
    if settings.assets_dir:
        return LocalAssetStore(pathlib.Path(settings.assets_dir).expanduser())
    return None
