"""FastAPI dependencies resolving per-app collaborators from ``app.state``."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request

from capgate.exceptions import ConfigError

if TYPE_CHECKING:
    from capgate.engine.cap import ChallengeEngine
    from capgate.web.assets import AssetStore


def get_engine(request: Request) -> ChallengeEngine:
    return request.app.state.engine


def get_assets(request: Request) -> AssetStore:
    assets: AssetStore | None = request.app.state.assets
    if assets is None:
        msg = "Configuration Error: Assets binding not found."
        raise ConfigError(msg)
    return assets
