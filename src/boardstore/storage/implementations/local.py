"""Local filesystem storage provider for development and self-hosted deployments."""

import json
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ...logging import get_logger
from ..base import BlobNotFound, SecurityException, StorageException, StorageProvider

logger = get_logger(__name__)


class LocalStorageProvider(StorageProvider):
    """Stores encrypted blobs as files below ``base_path``."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_safe_file_path(self, key: str) -> Path:
        """Get file path with security validation."""
        file_path = (self.base_path / key).resolve()

        try:
            file_path.relative_to(self.base_path)
        except ValueError as e:
            raise SecurityException(f"Path traversal detected: {key}") from e

        return file_path

    @staticmethod
    def _metadata_path(file_path: Path) -> Path:
        return file_path.with_suffix(file_path.suffix + ".meta")

    async def upload(
        self,
        key: str,
        content: bytes,
        content_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        file_path = self._get_safe_file_path(key)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)

            async with aiofiles.open(file_path, "wb") as f:
                await f.write(content)

            if metadata:
                async with aiofiles.open(self._metadata_path(file_path), "w") as f:
                    await f.write(json.dumps(metadata, indent=2))

        except OSError as e:
            logger.error("File system error uploading blob", key=key, error=str(e))
            raise StorageException(f"Failed to write file: {e}") from e

        logger.debug("Stored blob on local disk", key=key, content_type=content_type)
        return f"file://{file_path}"

    async def download(self, key: str) -> bytes:
        file_path = self._get_safe_file_path(key)
        if not file_path.exists():
            raise BlobNotFound(f"File not found: {key}")

        try:
            async with aiofiles.open(file_path, "rb") as f:
                return await f.read()
        except OSError as e:
            logger.error("File system error downloading blob", key=key, error=str(e))
            raise StorageException(f"Failed to read file: {e}") from e

    async def delete(self, key: str) -> bool:
        file_path = self._get_safe_file_path(key)
        if not file_path.exists():
            return False

        try:
            await aiofiles.os.remove(file_path)

            metadata_path = self._metadata_path(file_path)
            if metadata_path.exists():
                await aiofiles.os.remove(metadata_path)
        except OSError as e:
            logger.error("File system error deleting blob", key=key, error=str(e))
            raise StorageException(f"Failed to delete file: {e}") from e

        return True

    async def exists(self, key: str) -> bool:
        try:
            return self._get_safe_file_path(key).exists()
        except SecurityException:
            return False
