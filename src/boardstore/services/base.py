"""Interfaces of the external collaborators the board store consumes.

Every collaborator is bound to one participant: implementations authenticate
calls as that participant, so none of the methods take a requester argument.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from ..models import ActivityState, Channel, ChannelCreateRequest, ChannelImage, EncryptedContent
from ..pagination import CollectionRef, ContinuationToken


class ConversationService(Protocol):
    """Conversation membership and access-control lists."""

    async def resolve_acl(self, conversation_id: str) -> str:
        """
        Return the ACL URL of a conversation.

        Raises:
            NotAuthorized: If the participant is not a member
            NotFound: If the conversation does not exist
        """
        ...

    async def leave(self, conversation_id: str) -> None:
        """Remove the participant from the conversation, revoking key access."""
        ...


class KeyManagementService(Protocol):
    """Key-management service (KMS) client."""

    async def mint_resource(self, acl_url: str) -> tuple[str, str]:
        """
        Create a KMS resource authorized through ``acl_url``.

        Returns:
            Tuple of (kms_resource_url, default_encryption_key_url)
        """
        ...

    async def resolve(self, kms_resource_url: str) -> str:
        """
        Return the key URL currently bound to a KMS resource.

        Raises:
            KeyUnavailable: If the participant may not use the resource
        """
        ...

    async def get_key(self, key_url: str) -> bytes:
        """
        Return the 256-bit key material behind ``key_url``.

        Raises:
            KeyUnavailable: If the participant may not use the key
        """
        ...


class FileService(Protocol):
    """Blob storage for encrypted files."""

    async def upload(self, data: bytes, content_type: str) -> str:
        """Store ciphertext and return its location handle."""
        ...

    async def fetch(self, loc: str) -> bytes:
        """Return the ciphertext stored at ``loc``."""
        ...

    async def delete(self, loc: str) -> bool:
        """Remove the ciphertext stored at ``loc``; False if nothing was there."""
        ...


class BoardService(Protocol):
    """Remote board service holding channels and their encrypted contents."""

    supports_type_filter: bool

    async def create_channel(self, request: ChannelCreateRequest) -> Channel: ...

    async def get_channel(self, channel_id: str) -> Channel:
        """
        Raises:
            NotFound: If the channel was deleted or never existed
        """
        ...

    async def fetch_page(
        self,
        collection: CollectionRef,
        token: ContinuationToken | None,
        limit: int,
    ) -> tuple[list[Any], ContinuationToken | None]:
        """Fetch one slice of channels (``Channel``) or contents (``EncryptedContent``)."""
        ...

    async def add_contents(
        self, channel_id: str, contents: list[EncryptedContent]
    ) -> list[EncryptedContent]:
        """
        Append a batch of contents atomically and return them as stored.

        Raises:
            ChannelLocked: If the channel is locked for deletion
        """
        ...

    async def delete_all_contents(self, channel_id: str) -> None: ...

    async def set_channel_image(self, channel_id: str, image: ChannelImage) -> Channel: ...

    async def update_activity_state(
        self, channel_id: str, state: ActivityState, if_state: ActivityState
    ) -> Channel:
        """
        Change the activity state if it still equals ``if_state``.

        Raises:
            ChannelStateConflict: If the current state differs from ``if_state``
        """
        ...

    async def delete_channel(self, channel_id: str, if_state: ActivityState) -> None:
        """
        Destroy a channel and its contents if its state still equals ``if_state``.

        Raises:
            ChannelStateConflict: If the current state differs from ``if_state``
        """
        ...

    async def ping(self) -> bool: ...


@dataclass
class Collaborators:
    """The set of collaborators one client works with."""

    participant_id: str
    conversations: ConversationService
    kms: KeyManagementService
    files: FileService
    boards: BoardService
