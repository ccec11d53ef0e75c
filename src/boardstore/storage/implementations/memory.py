"""In-process storage provider for tests and single-process development."""

from typing import Any

from ...logging import get_logger
from ..base import BlobNotFound, StorageProvider

logger = get_logger(__name__)


class MemoryStorageProvider(StorageProvider):
    """Keeps blobs in a dictionary. Contents are lost with the process."""

    def __init__(self):
        self._blobs: dict[str, bytes] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    async def upload(
        self,
        key: str,
        content: bytes,
        content_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        self._blobs[key] = bytes(content)
        self._metadata[key] = {"content_type": content_type, **(metadata or {})}
        logger.debug("Stored blob in memory", key=key, size=len(content))
        return f"memory://{key}"

    async def download(self, key: str) -> bytes:
        try:
            return self._blobs[key]
        except KeyError as e:
            raise BlobNotFound(f"File not found: {key}") from e

    async def delete(self, key: str) -> bool:
        self._metadata.pop(key, None)
        return self._blobs.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        return key in self._blobs
