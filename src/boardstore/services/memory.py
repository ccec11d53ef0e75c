"""In-process reference implementation of the board store's collaborators.

``InMemoryBackend`` holds the server-side state shared by every participant:
conversations and their ACLs, KMS resources and keys, channels and their
encrypted contents, and blob storage. ``InMemoryBackend.connect`` returns the
collaborators one participant's client uses; each call is authorized as that
participant, the way the real services authorize a bearer token.
"""

from __future__ import annotations

import asyncio
import base64
import json
import os
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..errors import (
    ChannelLocked,
    ChannelStateConflict,
    KeyUnavailable,
    NotAuthorized,
    NotFound,
    ServiceError,
)
from ..logging import get_logger
from ..models import (
    ActivityState,
    Channel,
    ChannelCreateRequest,
    ChannelImage,
    Conversation,
    EncryptedContent,
)
from ..pagination import CollectionRef, ContinuationToken
from ..storage import BlobStorageManager, create_memory_storage
from .base import Collaborators

logger = get_logger(__name__)

KEY_SIZE = 32


async def _round_trip() -> None:
    # Every collaborator call is a suspension point
    await asyncio.sleep(0)


def _encode_token(position: dict[str, Any]) -> ContinuationToken:
    raw = json.dumps(position, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return ContinuationToken(base64.urlsafe_b64encode(raw).decode("ascii").rstrip("="))


def _decode_token(token: ContinuationToken) -> dict[str, Any]:
    padded = token.value + "=" * (-len(token.value) % 4)
    try:
        parsed = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
    except ValueError as e:
        raise ServiceError("Invalid continuation token", status_code=400) from e
    if not isinstance(parsed, dict):
        raise ServiceError("Invalid continuation token", status_code=400)
    return parsed


@dataclass
class _KmsResource:
    acl_url: str
    key_url: str


@dataclass
class _ConversationState:
    conversation: Conversation
    members: set[str] = field(default_factory=set)


class InMemoryBackend:
    """Shared server-side state for a set of participants."""

    def __init__(
        self,
        base_url: str = "https://board.example.test",
        files: BlobStorageManager | None = None,
        supports_type_filter: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.files = files or create_memory_storage()
        self.supports_type_filter = supports_type_filter

        self._conversations: dict[str, _ConversationState] = {}
        # ACL URL -> owning conversation id, for conversation and channel ACLs
        self._acls: dict[str, str] = {}
        self._kms_resources: dict[str, _KmsResource] = {}
        self._keys: dict[str, tuple[str, bytes]] = {}
        self._channels: dict[str, Channel] = {}
        self._contents: dict[str, list[EncryptedContent]] = {}

    def connect(self, participant_id: str) -> Collaborators:
        """Collaborators authorized as ``participant_id``."""
        return Collaborators(
            participant_id=participant_id,
            conversations=MemoryConversationClient(self, participant_id),
            kms=MemoryKeyClient(self, participant_id),
            files=self.files,
            boards=MemoryBoardClient(self, participant_id),
        )

    # Conversations

    def create_conversation(
        self, creator_id: str, participants: list[str], display_name: str | None = None
    ) -> Conversation:
        """Create a conversation with its own ACL and KMS resource."""
        conversation_id = str(uuid.uuid4())
        acl_url = f"{self.base_url}/conversations/{conversation_id}/acl"
        self._acls[acl_url] = conversation_id

        members = {creator_id, *participants}
        resource_url, key_url = self._mint_resource(acl_url)

        conversation = Conversation(
            conversation_id=conversation_id,
            display_name=display_name,
            acl_url=acl_url,
            kms_resource_url=resource_url,
            default_encryption_key_url=key_url,
            participants=sorted(members),
        )
        self._conversations[conversation_id] = _ConversationState(conversation, members)
        logger.debug("Created conversation", conversation_id=conversation_id)
        return conversation

    def is_authorized(self, acl_url: str, participant_id: str) -> bool:
        conversation_id = self._acls.get(acl_url)
        if conversation_id is None:
            return False
        state = self._conversations.get(conversation_id)
        return state is not None and participant_id in state.members

    def _conversation(self, conversation_id: str) -> _ConversationState:
        state = self._conversations.get(conversation_id)
        if state is None:
            raise NotFound(f"Conversation {conversation_id} not found")
        return state

    # KMS

    def _mint_resource(self, acl_url: str) -> tuple[str, str]:
        resource_url = f"{self.base_url}/kms/resources/{uuid.uuid4()}"
        key_url = f"{self.base_url}/kms/keys/{uuid.uuid4()}"
        self._kms_resources[resource_url] = _KmsResource(acl_url=acl_url, key_url=key_url)
        self._keys[key_url] = (resource_url, os.urandom(KEY_SIZE))
        return resource_url, key_url

    def _authorize_resource(self, resource_url: str, participant_id: str) -> _KmsResource:
        resource = self._kms_resources.get(resource_url)
        if resource is None or not self.is_authorized(resource.acl_url, participant_id):
            raise KeyUnavailable(f"KMS resource {resource_url} is not available")
        return resource

    # Channels

    def _channel(self, channel_id: str, participant_id: str) -> Channel:
        channel = self._channels.get(channel_id)
        if channel is None:
            raise NotFound(f"Channel {channel_id} not found")
        if not self.is_authorized(channel.acl_url_link, participant_id):
            raise NotAuthorized(f"Not a participant of channel {channel_id}")
        return channel

    def _writable_channel(self, channel_id: str, participant_id: str) -> Channel:
        channel = self._channel(channel_id, participant_id)
        if channel.activity_state is ActivityState.LOCKED:
            raise ChannelLocked(f"Channel {channel_id} is locked for deletion", channel_id)
        return channel


class MemoryConversationClient:
    def __init__(self, backend: InMemoryBackend, participant_id: str):
        self.backend = backend
        self.participant_id = participant_id

    async def resolve_acl(self, conversation_id: str) -> str:
        await _round_trip()
        state = self.backend._conversation(conversation_id)
        if self.participant_id not in state.members:
            raise NotAuthorized(f"Not a participant of conversation {conversation_id}")
        return state.conversation.acl_url

    async def leave(self, conversation_id: str) -> None:
        await _round_trip()
        state = self.backend._conversation(conversation_id)
        state.members.discard(self.participant_id)
        logger.info("Participant left conversation", conversation_id=conversation_id)


class MemoryKeyClient:
    def __init__(self, backend: InMemoryBackend, participant_id: str):
        self.backend = backend
        self.participant_id = participant_id

    async def mint_resource(self, acl_url: str) -> tuple[str, str]:
        await _round_trip()
        if not self.backend.is_authorized(acl_url, self.participant_id):
            raise NotAuthorized(f"Not authorized through ACL {acl_url}")
        return self.backend._mint_resource(acl_url)

    async def resolve(self, kms_resource_url: str) -> str:
        await _round_trip()
        return self.backend._authorize_resource(kms_resource_url, self.participant_id).key_url

    async def get_key(self, key_url: str) -> bytes:
        await _round_trip()
        entry = self.backend._keys.get(key_url)
        if entry is None:
            raise KeyUnavailable(f"Unknown key {key_url}", key_url)

        resource_url, material = entry
        try:
            self.backend._authorize_resource(resource_url, self.participant_id)
        except KeyUnavailable as e:
            raise KeyUnavailable(f"Key {key_url} is not available", key_url) from e
        return material


class MemoryBoardClient:
    def __init__(self, backend: InMemoryBackend, participant_id: str):
        self.backend = backend
        self.participant_id = participant_id

    @property
    def supports_type_filter(self) -> bool:
        return self.backend.supports_type_filter

    async def create_channel(self, request: ChannelCreateRequest) -> Channel:
        await _round_trip()
        backend = self.backend
        if not backend.is_authorized(request.acl_url_link, self.participant_id):
            raise NotAuthorized("Not a participant of the conversation")

        channel_id = str(uuid.uuid4())
        channel_url = f"{backend.base_url}/channels/{channel_id}"
        acl_url = f"{channel_url}/acl"
        backend._acls[acl_url] = backend._acls[request.acl_url_link]

        channel = Channel(
            channel_id=channel_id,
            channel_url=channel_url,
            acl_url=acl_url,
            acl_url_link=request.acl_url_link,
            kms_resource_url=request.kms_resource_url,
            default_encryption_key_url=request.default_encryption_key_url,
            type=request.type,
            creator_id=self.participant_id,
        )
        backend._channels[channel_id] = channel
        backend._contents[channel_id] = []
        return channel.model_copy(deep=True)

    async def get_channel(self, channel_id: str) -> Channel:
        await _round_trip()
        return self.backend._channel(channel_id, self.participant_id).model_copy(deep=True)

    async def fetch_page(
        self,
        collection: CollectionRef,
        token: ContinuationToken | None,
        limit: int,
    ) -> tuple[list[Any], ContinuationToken | None]:
        await _round_trip()
        items = self._collection_items(collection)

        if token is None:
            offset, end = 0, len(items)
        else:
            position = _decode_token(token)
            if position.get("c") != f"{collection.kind}:{collection.owner}":
                raise ServiceError("Continuation token belongs to another collection", 400)
            offset, end = int(position["o"]), int(position["e"])

        stop = min(offset + limit, end)
        page = [item.model_copy(deep=True) for item in items[offset:stop]]

        next_token = None
        if stop < end:
            next_token = _encode_token(
                {"c": f"{collection.kind}:{collection.owner}", "o": stop, "e": end}
            )
        return page, next_token

    def _collection_items(self, collection: CollectionRef) -> list[Any]:
        backend = self.backend
        if collection.kind == "contents":
            backend._channel(collection.owner, self.participant_id)
            return backend._contents[collection.owner]

        if not backend.is_authorized(collection.owner, self.participant_id):
            raise NotAuthorized("Not a participant of the conversation")

        channel_type = collection.param("type") if backend.supports_type_filter else None
        return [
            channel
            for channel in backend._channels.values()
            if channel.acl_url_link == collection.owner
            and (channel_type is None or channel.type == channel_type)
        ]

    async def add_contents(
        self, channel_id: str, contents: list[EncryptedContent]
    ) -> list[EncryptedContent]:
        await _round_trip()
        channel = self.backend._writable_channel(channel_id, self.participant_id)

        stored = []
        for content in contents:
            content_id = str(uuid.uuid4())
            stored.append(
                content.model_copy(
                    update={
                        "content_id": content_id,
                        "content_url": f"{channel.channel_url}/contents/{content_id}",
                        "channel_url": channel.channel_url,
                        "creator_id": self.participant_id,
                        "created_at": datetime.now(UTC),
                    },
                    deep=True,
                )
            )

        self.backend._contents[channel_id].extend(stored)
        return [content.model_copy(deep=True) for content in stored]

    async def delete_all_contents(self, channel_id: str) -> None:
        await _round_trip()
        self.backend._writable_channel(channel_id, self.participant_id)
        self.backend._contents[channel_id] = []

    async def set_channel_image(self, channel_id: str, image: ChannelImage) -> Channel:
        await _round_trip()
        channel = self.backend._writable_channel(channel_id, self.participant_id)
        channel.image = image.model_copy()
        return channel.model_copy(deep=True)

    async def update_activity_state(
        self, channel_id: str, state: ActivityState, if_state: ActivityState
    ) -> Channel:
        await _round_trip()
        channel = self.backend._channel(channel_id, self.participant_id)
        if channel.activity_state is not if_state:
            raise ChannelStateConflict(
                f"Channel {channel_id} is {channel.activity_state.value}, expected {if_state.value}"
            )
        channel.activity_state = state
        return channel.model_copy(deep=True)

    async def delete_channel(self, channel_id: str, if_state: ActivityState) -> None:
        await _round_trip()
        channel = self.backend._channel(channel_id, self.participant_id)
        if channel.activity_state is not if_state:
            raise ChannelStateConflict(
                f"Channel {channel_id} is {channel.activity_state.value}, expected {if_state.value}"
            )
        del self.backend._channels[channel_id]
        del self.backend._contents[channel_id]
        self.backend._acls.pop(channel.acl_url, None)

    async def ping(self) -> bool:
        await _round_trip()
        return True
