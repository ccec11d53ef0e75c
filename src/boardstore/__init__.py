"""
Board Store
End-to-end encrypted, paginated whiteboard channels for conversations
"""

__version__ = "0.1.0"

from .board import BoardStore
from .config import settings
from .models import ActivityState, BoardFile, Channel, ContentRecord, Conversation, NewContent
from .pagination import Page

__all__ = [
    "settings",
    "__version__",
    "BoardStore",
    "ActivityState",
    "BoardFile",
    "Channel",
    "ContentRecord",
    "Conversation",
    "NewContent",
    "Page",
]
