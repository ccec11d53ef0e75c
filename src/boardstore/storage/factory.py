"""Factory for creating storage providers and the blob storage manager."""

from pathlib import Path
from typing import Any

from ..logging import get_logger
from .base import BlobStorageManager, StorageConfig, StorageProvider
from .config import load_storage_config
from .implementations.local import LocalStorageProvider
from .implementations.memory import MemoryStorageProvider

logger = get_logger(__name__)


def create_storage_provider(provider_type: str, config: dict[str, Any]) -> StorageProvider:
    """Create a storage provider instance from configuration.

    Args:
        provider_type: Type of provider ('memory', 'local')
        config: Provider configuration dictionary

    Raises:
        ValueError: If provider type is unknown
    """
    if provider_type == "memory":
        return MemoryStorageProvider()
    elif provider_type == "local":
        base_path = config.get("base_path", "/tmp/boardstore/blobs")
        return LocalStorageProvider(base_path=Path(base_path))
    else:
        raise ValueError(f"Unknown storage provider type: {provider_type}")


def build_storage_manager(storage_config: StorageConfig) -> BlobStorageManager:
    """Build a storage manager from a StorageConfig, registering all providers.

    Raises:
        RuntimeError: If the default provider could not be registered
    """
    manager = BlobStorageManager(storage_config)

    for provider_name, provider_config in storage_config.providers.items():
        provider_type = provider_config.get("type", provider_name)
        try:
            provider = create_storage_provider(provider_type, provider_config.get("config", {}))
        except (ValueError, OSError) as e:
            logger.error("Failed to register storage provider", provider=provider_name, error=str(e))
            continue

        manager.register_provider(provider_name, provider)
        logger.info("Registered storage provider", provider=provider_name, type=provider_type)

    if storage_config.default_provider not in manager.providers:
        raise RuntimeError(
            f"Default storage provider '{storage_config.default_provider}' is not available"
        )

    return manager


def create_storage_manager(config_path: str | None = None) -> BlobStorageManager:
    """Create a storage manager from the configured YAML file (or defaults).

    Args:
        config_path: YAML file; defaults to ``settings.storage_config_path``
    """
    if config_path is None:
        from ..config import settings

        config_path = settings.storage_config_path

    storage_config = load_storage_config(Path(config_path) if config_path else None)
    return build_storage_manager(storage_config)


def create_memory_storage(max_file_size: int | None = None) -> BlobStorageManager:
    """Create an in-memory storage manager, independent of global settings."""
    config = StorageConfig(
        default_provider="memory",
        providers={"memory": {"type": "memory", "config": {}}},
    )
    if max_file_size is not None:
        config.max_file_size = max_file_size

    return build_storage_manager(config)
