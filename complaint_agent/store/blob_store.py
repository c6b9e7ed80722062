"""Blob upload service interface and an in-memory implementation."""

import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Stores raw file bytes and returns a URL the complaint can reference."""

    async def put(self, key: str, data: bytes, mime_type: str) -> str: ...


class InMemoryBlobStore:
    """Keeps uploaded bytes in a dict and hands out ``memory://`` URLs."""

    def __init__(self) -> None:
        self._blobs: dict[str, tuple[bytes, str]] = {}

    async def put(self, key: str, data: bytes, mime_type: str) -> str:
        self._blobs[key] = (data, mime_type)
        logger.debug("Stored blob %s (%d bytes, %s)", key, len(data), mime_type)
        return f"memory://{key}"

    def read(self, key: str) -> Optional[bytes]:
        blob = self._blobs.get(key)
        return blob[0] if blob else None

    def __len__(self) -> int:
        return len(self._blobs)
