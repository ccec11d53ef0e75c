"""Tests for storage base classes and the blob storage manager."""

from unittest.mock import AsyncMock

import pytest

from boardstore.errors import BoardStoreError, NotFound
from boardstore.storage.base import (
    BlobNotFound,
    BlobStorageManager,
    SecurityException,
    StorageConfig,
    StorageException,
    ValidationException,
)
from boardstore.storage.implementations.memory import MemoryStorageProvider


class TestStorageConfig:
    """Test storage configuration."""

    def test_default_config(self):
        config = StorageConfig(default_provider="memory", providers={"memory": {}})

        assert config.default_provider == "memory"
        assert config.max_file_size == 100 * 1024 * 1024
        assert "image/png" in config.allowed_content_types
        assert "application/octet-stream" in config.allowed_content_types

    def test_custom_allowed_types(self):
        config = StorageConfig(
            default_provider="memory", providers={}, allowed_content_types={"text/plain"}
        )

        assert config.allowed_content_types == {"text/plain"}


class TestBlobStorageManager:
    """Test location handles, validation and delegation to providers."""

    @pytest.fixture
    def manager(self) -> BlobStorageManager:
        manager = BlobStorageManager(
            StorageConfig(default_provider="memory", providers={}, max_file_size=1024)
        )
        manager.register_provider("memory", MemoryStorageProvider())
        return manager

    def test_validate_storage_key(self, manager):
        assert manager._validate_storage_key("blobs/20250101/abc") == "blobs/20250101/abc"
        assert manager._validate_storage_key("blobs/a b$c") == "blobs/abc"

    @pytest.mark.parametrize("key", ["../etc/passwd", "/absolute", "a\\b", "blobs//x", "a/$$$"])
    def test_validate_storage_key_rejects(self, manager, key):
        with pytest.raises(SecurityException):
            manager._validate_storage_key(key)

    def test_generate_storage_key(self, manager):
        key = manager._generate_storage_key()

        assert key.startswith("blobs/")
        assert len(key.split("/")) == 3
        assert key != manager._generate_storage_key()

    def test_parse_loc(self, manager):
        assert manager.parse_loc("blob://memory/blobs/1/abc") == ("memory", "blobs/1/abc")

    @pytest.mark.parametrize(
        "loc", ["https://elsewhere/x", "blob://memory", "blob:///key", "blob://memory/../x"]
    )
    def test_parse_loc_rejects(self, manager, loc):
        with pytest.raises(SecurityException):
            manager.parse_loc(loc)

    @pytest.mark.asyncio
    async def test_upload_and_fetch(self, manager):
        loc = await manager.upload(b"ciphertext", "application/octet-stream")

        assert loc.startswith("blob://memory/blobs/")
        assert await manager.fetch(loc) == b"ciphertext"

    @pytest.mark.asyncio
    async def test_delete(self, manager):
        loc = await manager.upload(b"ciphertext", "application/octet-stream")

        assert await manager.delete(loc) is True
        assert await manager.delete(loc) is False
        with pytest.raises(BlobNotFound, match="not found"):
            await manager.fetch(loc)

    @pytest.mark.asyncio
    async def test_upload_rejects_content_type(self, manager):
        with pytest.raises(ValidationException, match="Content type not allowed"):
            await manager.upload(b"x", "text/html")

    @pytest.mark.asyncio
    async def test_upload_rejects_size(self, manager):
        with pytest.raises(ValidationException, match="exceeds limit"):
            await manager.upload(b"x" * 1025, "application/octet-stream")

    @pytest.mark.asyncio
    async def test_fetch_from_unknown_provider(self, manager):
        with pytest.raises(StorageException, match="Provider not found"):
            await manager.fetch("blob://s3/blobs/1/abc")

    @pytest.mark.asyncio
    async def test_provider_failure_is_wrapped(self, manager):
        failing = AsyncMock()
        failing.upload.side_effect = RuntimeError("disk on fire")
        manager.register_provider("memory", failing)

        with pytest.raises(StorageException, match="disk on fire"):
            await manager.upload(b"x", "application/octet-stream")


def test_storage_exceptions_are_board_store_errors():
    assert issubclass(StorageException, BoardStoreError)
    assert issubclass(ValidationException, StorageException)
    assert issubclass(BlobNotFound, NotFound)
    assert issubclass(BlobNotFound, StorageException)
