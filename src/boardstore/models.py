"""
Pydantic models for channels, content records and their encrypted transport forms.
"""

from __future__ import annotations

import mimetypes
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import aiofiles
from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ActivityState(str, Enum):
    """Activity/lock state of a channel."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    LOCKED = "locked"
    DELETED = "deleted"


class Conversation(BaseModel):
    """The conversation a board channel belongs to."""

    conversation_id: str
    display_name: str | None = None
    acl_url: str = Field(description="Access-control list of the conversation")
    kms_resource_url: str = Field(description="KMS resource protecting the conversation")
    default_encryption_key_url: str
    participants: list[str] = Field(default_factory=list)


class SecureContentReference(BaseModel):
    """Capability describing an encrypted blob: location, content key and integrity tag."""

    loc: str | None = Field(None, description="File service location, set after upload")
    key: str = Field(description="Base64url AES-256 content key")
    iv: str = Field(description="Base64url GCM nonce")
    tag: str = Field(description="Base64url GCM authentication tag")
    enc: str = "A256GCM"


class ChannelImage(BaseModel):
    """Snapshot image attached to a channel, protected by the channel's default key."""

    encryption_key_url: str
    scr: str = Field(description="Sealed secure content reference")
    mime_type: str | None = None
    size: int | None = None
    file_name: str | None = None


class Channel(BaseModel):
    """One board instance attached to a conversation."""

    channel_id: str
    channel_url: str
    acl_url: str = Field(description="The channel's own access-control list")
    acl_url_link: str = Field(description="Access-control list of the owning conversation")
    kms_resource_url: str
    default_encryption_key_url: str
    type: str | None = Field(None, description="Board flavor, e.g. 'annotated'")
    activity_state: ActivityState = ActivityState.INACTIVE
    image: ChannelImage | None = None
    creator_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class ChannelCreateRequest(BaseModel):
    """Body of a channel creation request sent to the board service."""

    acl_url_link: str
    kms_resource_url: str
    default_encryption_key_url: str
    type: str | None = None


class ContentFile(BaseModel):
    """Decrypted file attachment of a content record."""

    scr: SecureContentReference
    mime_type: str | None = None
    size: int | None = None
    file_name: str | None = None


class EncryptedFile(BaseModel):
    """File attachment as stored: the SCR is sealed under the record's key."""

    scr: str
    mime_type: str | None = None
    size: int | None = None
    file_name: str | None = None


class NewContent(BaseModel):
    """A plaintext record to add to a channel."""

    type: str
    payload: str | None = None
    metadata: dict[str, str] | None = None
    file: ContentFile | None = None


class ContentRecord(BaseModel):
    """A decrypted content record read from a channel."""

    content_id: str | None = None
    content_url: str | None = None
    channel_url: str | None = None
    type: str
    payload: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    file: ContentFile | None = None
    encryption_key_url: str | None = None
    creator_id: str | None = None
    created_at: datetime | None = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_defaults_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class EncryptedContent(BaseModel):
    """Transport envelope of a content record."""

    type: str
    encryption_key_url: str
    payload: str = Field(description="Compact ciphertext of the payload and metadata")
    file: EncryptedFile | None = None

    # Assigned by the board service once stored
    content_id: str | None = None
    content_url: str | None = None
    channel_url: str | None = None
    creator_id: str | None = None
    created_at: datetime | None = None


class BoardFile(BaseModel):
    """A binary file (image) to upload to a channel."""

    name: str
    data: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    async def from_path(cls, path: str | Path, mime_type: str | None = None) -> BoardFile:
        """Load a file from disk, guessing its MIME type from the extension."""
        path = Path(path)
        async with aiofiles.open(path, "rb") as f:
            data = await f.read()

        if mime_type is None:
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

        return cls(name=path.name, data=data, mime_type=mime_type)
