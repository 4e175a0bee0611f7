"""One-shot storage provisioning for the configured TTL backend."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from capgate.config.logging import setup_logging
from capgate.config.settings import get_settings

if TYPE_CHECKING:
    from capgate.config.settings import Settings

logger = structlog.get_logger(__name__)


async def provision(settings: Settings) -> None:
    """Prepare storage so the service can start.

    * database backend: create the ``challenges`` and ``tokens`` tables;
    * S3/R2: create both buckets and an expiry lifecycle rule on each;
    * local object storage: create the directories.
    """
    if settings.storage_backend == "database":
        from capgate.storage.database import create_engine, init_db

        engine = create_engine(settings)
        try:
            await init_db(engine)
        finally:
            await engine.dispose()
        logger.info("provisioned", backend="database")
        return

    from capgate.storage.object_store import create_object_store
    from capgate.storage.s3_store import S3ObjectStore

    for kind in ("challenges", "tokens"):
        store = create_object_store(settings, kind)
        if isinstance(store, S3ObjectStore):
            await store.ensure_bucket(settings.s3_expire_days)
    logger.info("provisioned", backend="object", s3=settings.use_s3)


def main() -> None:
    """Console entrypoint for ``capgate-setup``."""
    setup_logging(log_level="INFO", json_output=True)
    asyncio.run(provision(get_settings()))


if __name__ == "__main__":
    main()
