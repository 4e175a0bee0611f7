"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Access gate
    allowed: str = ""  # comma-separated hostnames, "*.example.com" wildcards
    empty_allowlist_policy: Literal["deny", "allow"] = "deny"

    # Challenge engine
    challenge_ttl: int = 300  # seconds
    token_ttl: int = 330  # seconds
    challenge_count: int = 50
    challenge_size: int = 32
    challenge_difficulty: int = 4

    # Storage
    storage_backend: Literal["object", "database"] = "object"
    storage_dir: str = "~/.capgate/storage"
    database_url: str = "sqlite+aiosqlite:///./capgate.db"

    # S3 / R2 (object backend only)
    use_s3: bool = False
    s3_challenges_bucket: str = "cap-challenges"
    s3_tokens_bucket: str = "cap-tokens"
    s3_endpoint_url: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_region: str = "auto"
    s3_expire_days: int = 1

    # Assets (one of these must be set to serve anything outside /api)
    assets_dir: str | None = None
    assets_url: str | None = None

    # App
    debug: bool = False
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    settings = Settings()
    if settings.use_s3 and settings.storage_backend != "object":
        msg = "USE_S3=true requires STORAGE_BACKEND=object"
        raise ValueError(msg)
    if settings.assets_dir and settings.assets_url:
        msg = "Set only one of ASSETS_DIR and ASSETS_URL"
        raise ValueError(msg)
    return settings
