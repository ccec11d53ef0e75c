"""Resolution of the encryption keys bound to a channel."""

from __future__ import annotations

from .errors import KeyUnavailable
from .logging import get_logger
from .models import Channel
from .services.base import KeyManagementService

logger = get_logger(__name__)


class KeyBindingResolver:
    """Maps a channel to the key URL its contents must be encrypted with.

    Resolved keys are not cached here. A participant removed from the owning
    conversation fails on the next resolution.
    """

    def __init__(self, kms: KeyManagementService):
        self.kms = kms

    async def resolve_key(self, channel: Channel) -> str:
        """Resolve the content key of a channel through its KMS resource.

        Raises:
            KeyUnavailable: If the participant cannot use the channel's KMS resource
        """
        try:
            key_url = await self.kms.resolve(channel.kms_resource_url)
        except KeyUnavailable:
            logger.warning(
                "Channel key unavailable",
                channel_id=channel.channel_id,
                kms_resource_url=channel.kms_resource_url,
            )
            raise

        if not key_url:
            # never hand back an empty key URL
            raise KeyUnavailable(
                f"KMS returned no key for channel {channel.channel_id}",
            )

        return key_url

    def resolve_metadata_key(self, channel: Channel) -> str:
        """Key for channel-level metadata such as the snapshot image."""
        return channel.default_encryption_key_url
