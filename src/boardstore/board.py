"""Public board store operations for one participant."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from .codec import ContentCodec
from .config import Settings
from .config import settings as default_settings
from .errors import (
    ChannelLocked,
    DecryptionDenied,
    KeyUnavailable,
    Malformed,
    NotAuthorized,
    NotFound,
)
from .keys import KeyBindingResolver
from .lifecycle import ChannelLifecycleManager
from .logging import get_logger, set_operation_context
from .models import (
    ActivityState,
    BoardFile,
    Channel,
    ChannelCreateRequest,
    ChannelImage,
    ContentFile,
    ContentRecord,
    Conversation,
    EncryptedContent,
    NewContent,
    SecureContentReference,
)
from .pagination import CollectionRef, Page, first_page
from .services.base import Collaborators
from .storage import StorageException, ValidationException

logger = get_logger(__name__)

FILE_CONTENT_TYPE = "FILE"
BLOB_CONTENT_TYPE = "application/octet-stream"


def _type_filter(channel_type: str) -> Callable[[list[Channel]], Awaitable[list[Channel]]]:
    async def keep_matching(channels: list[Channel]) -> list[Channel]:
        return [channel for channel in channels if channel.type == channel_type]

    return keep_matching


class BoardStore:
    """Encrypted, paginated board channels attached to conversations.

    Every operation runs as ``collaborators.participant_id``. Contents are
    encrypted before they leave the client and decrypted after they arrive;
    the board service only ever sees ciphertext.
    """

    def __init__(self, collaborators: Collaborators, settings: Settings | None = None):
        self.collaborators = collaborators
        self.settings = settings or default_settings
        self.codec = ContentCodec(collaborators.kms)
        self.keys = KeyBindingResolver(collaborators.kms)
        self.lifecycle = ChannelLifecycleManager(collaborators.boards)

    @property
    def participant_id(self) -> str:
        return self.collaborators.participant_id

    def _begin(self) -> None:
        set_operation_context(participant_id=self.participant_id)

    # Channels

    async def create_channel(self, conversation: Conversation, type: str | None = None) -> Channel:
        """Create a channel in ``conversation`` with its own KMS resource.

        Raises:
            NotAuthorized: If the participant is not a member of the conversation
        """
        self._begin()
        acl_url = await self.collaborators.conversations.resolve_acl(conversation.conversation_id)
        kms_resource_url, key_url = await self.collaborators.kms.mint_resource(acl_url)

        channel = await self.collaborators.boards.create_channel(
            ChannelCreateRequest(
                acl_url_link=acl_url,
                kms_resource_url=kms_resource_url,
                default_encryption_key_url=key_url,
                type=type,
            )
        )
        logger.info(
            "Created channel",
            channel_id=channel.channel_id,
            conversation_id=conversation.conversation_id,
            type=type,
        )
        return channel

    async def get_channel(self, channel: Channel | str) -> Channel:
        """Fetch the current state of a channel.

        Raises:
            NotFound: If the channel was deleted
        """
        self._begin()
        channel_id = channel if isinstance(channel, str) else channel.channel_id
        return await self.collaborators.boards.get_channel(channel_id)

    async def get_channels(
        self,
        conversation: Conversation,
        type: str | None = None,
        channels_limit: int | None = None,
    ) -> Page[Channel]:
        """List the channels of a conversation, oldest first.

        Args:
            conversation: Conversation whose channels to list
            type: Only list channels of this board flavor
            channels_limit: Page size, defaults to ``settings.channels_page_size``
        """
        self._begin()
        acl_url = await self.collaborators.conversations.resolve_acl(conversation.conversation_id)
        limit = self.settings.channels_page_size if channels_limit is None else channels_limit

        boards = self.collaborators.boards
        transform = None
        if type is not None and not boards.supports_type_filter:
            transform = _type_filter(type)

        return await first_page(boards, CollectionRef.channels(acl_url, type), limit, transform)

    # Contents

    async def add_content(self, channel: Channel, records: list[NewContent]) -> Page[ContentRecord]:
        """Encrypt and store a batch of records, marking the channel active.

        The whole batch is encrypted before the single write, so either every
        record is stored or none is.

        Raises:
            ChannelLocked: If the channel is locked for deletion
            KeyUnavailable: If the participant cannot use the channel key
        """
        self._begin()
        key_url = await self.keys.resolve_key(channel)
        envelopes = await self.codec.encrypt_records(key_url, list(records))
        await self.lifecycle.ensure_writable(channel)
        if not envelopes:
            return Page.of([])

        stored = await self.collaborators.boards.add_contents(channel.channel_id, envelopes)
        logger.info("Added contents", channel_id=channel.channel_id, count=len(stored))
        await self._mark_written(channel)

        return Page.of(await self.codec.decrypt_records(stored))

    async def _mark_written(self, channel: Channel) -> None:
        try:
            await self.lifecycle.mark_active(channel)
        except ChannelLocked:
            # The lock landed after the batch was stored
            logger.info("Channel locked after write", channel_id=channel.channel_id)

    async def get_contents(
        self, channel: Channel, contents_limit: int | None = None
    ) -> Page[ContentRecord]:
        """Read the decrypted contents of a channel in insertion order.

        Raises:
            DecryptionDenied: If the participant may no longer use the channel key
        """
        self._begin()
        try:
            await self.keys.resolve_key(channel)
        except DecryptionDenied:
            raise
        except KeyUnavailable as e:
            raise DecryptionDenied(
                f"Cannot read contents of channel {channel.channel_id}: {e}", e.key_url
            ) from e

        limit = self.settings.contents_page_size if contents_limit is None else contents_limit
        return await first_page(
            self.collaborators.boards,
            CollectionRef.contents(channel.channel_id),
            limit,
            self.codec.decrypt_records,
        )

    async def delete_all_content(self, channel: Channel) -> None:
        """Remove every content record of a channel; the channel itself stays."""
        self._begin()
        await self.collaborators.boards.delete_all_contents(channel.channel_id)
        logger.info("Deleted all contents", channel_id=channel.channel_id)

    async def encrypt_contents(
        self, key_url: str, records: list[NewContent]
    ) -> list[EncryptedContent]:
        self._begin()
        return await self.codec.encrypt_records(key_url, list(records))

    async def decrypt_contents(self, contents: Iterable[EncryptedContent]) -> list[ContentRecord]:
        """Decrypt envelopes, e.g. the items of a page of raw contents."""
        self._begin()
        return await self.codec.decrypt_records(list(contents))

    # Images

    def _validate_image(self, file: BoardFile) -> None:
        if file.mime_type not in self.settings.allowed_image_types:
            raise ValidationException(f"Image type not allowed: {file.mime_type}")
        if file.size > self.settings.max_image_size:
            raise ValidationException(
                f"Image size {file.size} exceeds limit {self.settings.max_image_size}"
            )

    async def upload_image(self, channel: Channel, file: BoardFile) -> SecureContentReference:
        """Encrypt an image under a fresh content key and upload the ciphertext.

        Returns:
            The SCR of the upload; holding it is what grants access to the image

        Raises:
            ValidationException: If the image type or size is not accepted
        """
        self._begin()
        return await self._upload_image(channel, file)

    async def _upload_image(self, channel: Channel, file: BoardFile) -> SecureContentReference:
        self._validate_image(file)
        key_url = await self.keys.resolve_key(channel)

        scr, ciphertext = await self.codec.encrypt_blob(key_url, file.data)
        loc = await self.collaborators.files.upload(ciphertext, BLOB_CONTENT_TYPE)
        logger.info("Uploaded image", channel_id=channel.channel_id, size=file.size)
        return scr.model_copy(update={"loc": loc})

    async def _discard_blob(self, scr: SecureContentReference) -> None:
        if scr.loc is None:
            return
        try:
            await self.collaborators.files.delete(scr.loc)
        except StorageException as e:
            logger.warning("Failed to discard unreferenced blob", loc=scr.loc, error=str(e))

    async def set_snapshot_image(self, channel: Channel, file: BoardFile) -> Channel:
        """Upload ``file`` and attach it as the channel's snapshot image.

        Nothing is uploaded to a locked channel; the upload is removed again
        when attaching it fails.

        Raises:
            ChannelLocked: If the channel is locked for deletion
        """
        self._begin()
        await self.lifecycle.ensure_writable(channel)
        scr = await self._upload_image(channel, file)
        key_url = self.keys.resolve_metadata_key(channel)

        try:
            image = ChannelImage(
                encryption_key_url=key_url,
                scr=await self.codec.seal_scr(key_url, scr),
                mime_type=file.mime_type,
                size=file.size,
                file_name=file.name,
            )
            return await self.collaborators.boards.set_channel_image(channel.channel_id, image)
        except Exception:
            await self._discard_blob(scr)
            raise

    async def get_snapshot_image(self, channel: Channel) -> SecureContentReference:
        """Open the sealed SCR of a channel's snapshot image.

        Raises:
            NotFound: If the channel has no snapshot image
        """
        self._begin()
        if channel.image is None:
            raise NotFound(f"Channel {channel.channel_id} has no snapshot image")
        return await self.codec.open_scr(channel.image.encryption_key_url, channel.image.scr)

    async def add_image(
        self, channel: Channel, file: BoardFile, display_name: str | None = None
    ) -> Page[ContentRecord]:
        """Upload an image and add a ``FILE`` record pointing at it.

        Raises:
            ChannelLocked: If the channel is locked for deletion; nothing is uploaded
        """
        self._begin()
        await self.lifecycle.ensure_writable(channel)
        scr = await self._upload_image(channel, file)
        record = NewContent(
            type=FILE_CONTENT_TYPE,
            metadata={"displayName": display_name} if display_name is not None else None,
            file=ContentFile(scr=scr, mime_type=file.mime_type, size=file.size, file_name=file.name),
        )

        try:
            return await self.add_content(channel, [record])
        except Exception:
            await self._discard_blob(scr)
            raise

    async def download_image(self, scr: SecureContentReference) -> bytes:
        """Fetch and decrypt the image an SCR points at.

        Raises:
            BlobNotFound: If nothing is stored at the SCR's location
            IntegrityMismatch: If the stored ciphertext was altered
        """
        self._begin()
        if scr.loc is None:
            raise Malformed("SCR has no location")
        ciphertext = await self.collaborators.files.fetch(scr.loc)
        return self.codec.decrypt_blob(scr, ciphertext)

    # Lifecycle

    async def lock_channel_for_deletion(self, channel: Channel) -> ActivityState:
        self._begin()
        return await self.lifecycle.lock_for_deletion(channel)

    async def keep_active(self, channel: Channel) -> ActivityState:
        self._begin()
        return await self.lifecycle.mark_active(channel)

    async def delete_channel(
        self,
        conversation: Conversation,
        channel: Channel,
        prevent_delete_active_channel: bool = False,
    ) -> None:
        """Destroy a channel of ``conversation`` and all its contents.

        Raises:
            ChannelActive: If ``prevent_delete_active_channel`` is set and the
                channel is active; the channel is left untouched
        """
        self._begin()
        acl_url = await self.collaborators.conversations.resolve_acl(conversation.conversation_id)
        if channel.acl_url_link != acl_url:
            raise NotAuthorized(
                f"Channel {channel.channel_id} does not belong to conversation "
                f"{conversation.conversation_id}"
            )

        await self.lifecycle.request_deletion(channel, prevent_delete_active_channel)

    async def ping(self) -> bool:
        self._begin()
        return await self.collaborators.boards.ping()
