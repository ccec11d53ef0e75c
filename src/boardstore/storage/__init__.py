"""Blob storage backing the file service.

Encrypted image bytes are stored through pluggable providers:
- In-memory storage for tests and single-process use
- Local filesystem storage for development and self-hosted deployments

Main components:
- StorageProvider: Abstract base class for storage implementations
- BlobStorageManager: File service issuing and resolving location handles
"""

from .base import (
    BlobStorageManager,
    BlobNotFound,
    SecurityException,
    StorageConfig,
    StorageException,
    StorageProvider,
    ValidationException,
)
from .config import create_example_config, load_storage_config
from .factory import (
    build_storage_manager,
    create_memory_storage,
    create_storage_manager,
    create_storage_provider,
)

__all__ = [
    # Base classes and exceptions
    "StorageProvider",
    "BlobStorageManager",
    "StorageConfig",
    "StorageException",
    "BlobNotFound",
    "SecurityException",
    "ValidationException",
    # Factory functions
    "create_storage_provider",
    "build_storage_manager",
    "create_storage_manager",
    "create_memory_storage",
    # Configuration
    "load_storage_config",
    "create_example_config",
]
