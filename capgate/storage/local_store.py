"""Local filesystem object store implementation."""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import pathlib  # noqa: TC003 - used at runtime for Path operations
from urllib.parse import quote

import structlog

from capgate.exceptions import StorageError
from capgate.storage.object_store import ObjectStore, StoredObject

logger = structlog.get_logger(__name__)

META_SUFFIX = ".meta.json"
# Leaves room for META_SUFFIX under the common 255-byte filename limit.
MAX_NAME_LENGTH = 200


def object_filename(key: str) -> str:
    """Map an arbitrary key to a single flat filename.

    Every ``/`` and ``.`` is percent-encoded, so a name can never leave the
    base directory or collide with a metadata sidecar. Empty and overlong
    keys are named by digest; ``#`` is always encoded by ``quote`` so those
    names cannot clash with an encoded key.
    """
    name = quote(key, safe="").replace(".", "%2E")
    if not name or len(name) > MAX_NAME_LENGTH:
        return "#sha256-" + hashlib.sha256(key.encode()).hexdigest()
    return name


class LocalObjectStore(ObjectStore):
    """Object store backed by local files, one flat file per key.

    Metadata lives in a JSON sidecar next to each object. Filesystem errors
    other than a missing object surface as ``StorageError``.
    """

    def __init__(self, base_dir: pathlib.Path) -> None:
        self._base = base_dir.resolve()
        self._base.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> pathlib.Path:
        return self._base / object_filename(key)

    @staticmethod
    def _meta_path(path: pathlib.Path) -> pathlib.Path:
        return path.with_name(path.name + META_SUFFIX)

    async def put(self, key: str, data: bytes, metadata: dict[str, str] | None = None) -> None:
        """Write data and its metadata sidecar."""
        path = self._path_for(key)
        meta = json.dumps(metadata or {})

        def _write() -> None:
            self._meta_path(path).write_text(meta, "utf-8")
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            logger.warning("local_store_io_failed", op="put", key=key, error=str(exc))
            msg = "Local object store write failed"
            raise StorageError(msg) from exc
        logger.debug("local_store_put", key=key, size=len(data))

    async def get(self, key: str) -> StoredObject | None:
        """Read data and metadata. Returns None if not found."""
        path = self._path_for(key)

        def _read() -> StoredObject | None:
            try:
                data = path.read_bytes()
            except FileNotFoundError:
                return None
            try:
                metadata = json.loads(self._meta_path(path).read_text("utf-8"))
            except (FileNotFoundError, json.JSONDecodeError):
                metadata = {}
            return StoredObject(data=data, metadata=metadata)

        try:
            return await asyncio.to_thread(_read)
        except OSError as exc:
            logger.warning("local_store_io_failed", op="get", key=key, error=str(exc))
            msg = "Local object store read failed"
            raise StorageError(msg) from exc

    async def delete(self, key: str) -> None:
        """Remove an object and its sidecar. Missing files are ignored."""
        path = self._path_for(key)

        def _unlink() -> None:
            for target in (path, self._meta_path(path)):
                with contextlib.suppress(FileNotFoundError):
                    target.unlink()

        try:
            await asyncio.to_thread(_unlink)
        except OSError as exc:
            logger.warning("local_store_io_failed", op="delete", key=key, error=str(exc))
            msg = "Local object store delete failed"
            raise StorageError(msg) from exc
