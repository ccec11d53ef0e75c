"""Storage provider implementations."""

from .local import LocalStorageProvider
from .memory import MemoryStorageProvider

__all__ = ["LocalStorageProvider", "MemoryStorageProvider"]
