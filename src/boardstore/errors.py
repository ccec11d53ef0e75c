"""Exception hierarchy for board store operations."""

from __future__ import annotations


class BoardStoreError(Exception):
    """Base exception for board store operations."""

    pass


class NotAuthorized(BoardStoreError):
    """Raised when the participant is not allowed to act on a conversation or channel."""

    pass


class KeyUnavailable(NotAuthorized):
    """Raised when the participant cannot obtain a channel's encryption key."""

    def __init__(self, message: str, key_url: str | None = None):
        super().__init__(message)
        self.key_url = key_url


class DecryptionDenied(KeyUnavailable):
    """Raised when content cannot be decrypted because its key is unavailable."""

    pass


class DataCorruption(BoardStoreError):
    """Base exception for content that fails structural or integrity checks."""

    pass


class Malformed(DataCorruption):
    """Raised when an envelope was not produced by the content codec."""

    pass


class IntegrityMismatch(DataCorruption):
    """Raised when blob ciphertext does not match its secure content reference."""

    pass


class LifecycleViolation(BoardStoreError):
    """Base exception for operations rejected by channel lifecycle rules."""

    def __init__(self, message: str, channel_id: str | None = None):
        super().__init__(message)
        self.channel_id = channel_id


class ChannelLocked(LifecycleViolation):
    """Raised when writing to a channel that was locked for deletion."""

    pass


class ChannelActive(LifecycleViolation):
    """Raised when a guarded deletion targets an active channel."""

    pass


class ChannelStateConflict(BoardStoreError):
    """Raised when a conditional state change finds a different current state."""

    pass


class NotFound(BoardStoreError):
    """Raised when a channel or content no longer exists."""

    pass


class NoMoreData(BoardStoreError):
    """Raised when advancing a page that has no continuation."""

    pass


class ServiceError(BoardStoreError):
    """Raised when a collaborator call fails for transport or server reasons."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
