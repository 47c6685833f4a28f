"""Blob storage backends holding the serialized index records."""

import asyncio
import os
import re
import tempfile
from pathlib import Path
from typing import Mapping, Protocol

from rag_search.errors import BlobNotFoundError, PersistenceError

_SAFE_KEY = re.compile(r"^[A-Za-z0-9._-]+$")


class ObjectStore(Protocol):
    """Minimal key/blob interface used by the document store."""

    async def read_blob(self, key: str) -> bytes:
        """Return the blob stored under key, or raise BlobNotFoundError."""
        ...

    async def write_blob(self, key: str, data: bytes) -> None:
        ...

    async def write_blobs(self, blobs: Mapping[str, bytes]) -> None:
        """Write several blobs, in mapping order."""
        ...


class FileObjectStore:
    """
    Object store backed by one file per key.

    Every write lands in a temporary file in the same directory and is
    moved into place with os.replace, so readers see either the old or
    the new blob, never a partial one.

    File I/O runs in a worker thread so the event loop never blocks.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.root / key

    def read_blob_sync(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(key) from e
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

    def write_blob_sync(self, key: str, data: bytes) -> None:
        path = self._path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", dir=self.root)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

    async def read_blob(self, key: str) -> bytes:
        return await asyncio.to_thread(self.read_blob_sync, key)

    async def write_blob(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self.write_blob_sync, key, data)

    async def write_blobs(self, blobs: Mapping[str, bytes]) -> None:
        items = list(blobs.items())

        def _write_all():
            for key, data in items:
                self.write_blob_sync(key, data)

        await asyncio.to_thread(_write_all)
