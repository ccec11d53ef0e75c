"""Core blob storage interfaces and the file service built on them."""

from __future__ import annotations

import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..errors import BoardStoreError, NotFound
from ..logging import get_logger

logger = get_logger(__name__)

LOC_SCHEME = "blob://"


@dataclass
class StorageConfig:
    """Configuration for blob storage."""

    default_provider: str
    providers: dict[str, dict[str, Any]]
    max_file_size: int = 100 * 1024 * 1024  # 100MB default
    allowed_content_types: set[str] = field(default_factory=set)

    def __post_init__(self):
        if not self.allowed_content_types:
            self.allowed_content_types = {
                "image/jpeg",
                "image/png",
                "image/webp",
                "image/gif",
                "application/octet-stream",
            }


class StorageException(BoardStoreError):
    """Base exception for storage operations."""

    pass


class BlobNotFound(StorageException, NotFound):
    """Raised when no blob is stored under a key."""

    pass


class SecurityException(StorageException):
    """Security-related storage exception."""

    pass


class ValidationException(StorageException):
    """Content validation exception."""

    pass


class StorageProvider(ABC):
    """Abstract base class for all blob storage providers."""

    @abstractmethod
    async def upload(
        self,
        key: str,
        content: bytes,
        content_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Store content under ``key`` and return a provider URL for it.

        Raises:
            StorageException: On upload failure
            SecurityException: If the key escapes the provider's namespace
        """
        pass

    @abstractmethod
    async def download(self, key: str) -> bytes:
        """Download content by storage key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete content by storage key."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if content exists."""
        pass


class BlobStorageManager:
    """File service storing encrypted blobs through registered providers.

    Location handles have the form ``blob://<provider>/<key>``; they are the
    ``loc`` of secure content references and are opaque to everything else.
    """

    def __init__(self, config: StorageConfig):
        self.providers: dict[str, StorageProvider] = {}
        self.default_provider = config.default_provider
        self.config = config

    def register_provider(self, name: str, provider: StorageProvider) -> None:
        """Register a storage provider."""
        self.providers[name] = provider

    def _validate_storage_key(self, key: str) -> str:
        """Validate and sanitize storage key to prevent path traversal."""
        if ".." in key or key.startswith("/") or "\\" in key:
            raise SecurityException(f"Invalid storage key: {key}")

        sanitized_parts: list[str] = []
        for part in key.split("/"):
            sanitized = re.sub(r"[^a-zA-Z0-9._-]", "", part)
            if not sanitized:
                raise SecurityException(f"Invalid key component: {part}")
            sanitized_parts.append(sanitized)

        return "/".join(sanitized_parts)

    def _validate_content_type(self, content_type: str) -> None:
        if content_type not in self.config.allowed_content_types:
            raise ValidationException(f"Content type not allowed: {content_type}")

    def _validate_file_size(self, content_size: int) -> None:
        if content_size > self.config.max_file_size:
            raise ValidationException(
                f"File size {content_size} exceeds limit {self.config.max_file_size}"
            )

    def _generate_storage_key(self) -> str:
        """Generate a date-sharded key with collision prevention."""
        day = datetime.now(UTC).strftime("%Y%m%d")
        return f"blobs/{day}/{uuid.uuid4().hex}"

    def _provider(self, name: str) -> StorageProvider:
        if name not in self.providers:
            raise StorageException(f"Provider not found: {name}")
        return self.providers[name]

    def format_loc(self, provider_name: str, key: str) -> str:
        return f"{LOC_SCHEME}{provider_name}/{key}"

    def parse_loc(self, loc: str) -> tuple[str, str]:
        """Split a location handle into (provider name, validated key)."""
        if not loc.startswith(LOC_SCHEME):
            raise SecurityException(f"Unknown location handle: {loc}")

        provider_name, _, key = loc[len(LOC_SCHEME) :].partition("/")
        if not provider_name or not key:
            raise SecurityException(f"Incomplete location handle: {loc}")

        return provider_name, self._validate_storage_key(key)

    async def upload(self, data: bytes, content_type: str) -> str:
        """Store encrypted bytes and return their location handle."""
        self._validate_content_type(content_type)
        self._validate_file_size(len(data))

        key = self._validate_storage_key(self._generate_storage_key())
        provider = self._provider(self.default_provider)

        metadata = {
            "content_type": content_type,
            "size": len(data),
            "uploaded_at": datetime.now(UTC).isoformat(),
        }

        try:
            await provider.upload(key, data, content_type, metadata)
        except StorageException:
            raise
        except Exception as e:
            logger.error("Failed to store blob", key=key, error=str(e))
            raise StorageException(f"Storage operation failed: {e}") from e

        loc = self.format_loc(self.default_provider, key)
        logger.info("Stored blob", loc=loc, size=len(data))
        return loc

    async def fetch(self, loc: str) -> bytes:
        """Return the bytes stored at a location handle."""
        provider_name, key = self.parse_loc(loc)
        return await self._provider(provider_name).download(key)

    async def delete(self, loc: str) -> bool:
        provider_name, key = self.parse_loc(loc)
        return await self._provider(provider_name).delete(key)
