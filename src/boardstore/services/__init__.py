"""Collaborator interfaces and their implementations."""

from .base import (
    BoardService,
    Collaborators,
    ConversationService,
    FileService,
    KeyManagementService,
)
from .http import HttpBoardService
from .memory import InMemoryBackend

__all__ = [
    "BoardService",
    "Collaborators",
    "ConversationService",
    "FileService",
    "KeyManagementService",
    "HttpBoardService",
    "InMemoryBackend",
]
