"""Channel activity and lock-for-deletion lifecycle."""

from __future__ import annotations

from enum import Enum

from .errors import (
    BoardStoreError,
    ChannelActive,
    ChannelLocked,
    ChannelStateConflict,
    NotFound,
)
from .logging import get_logger
from .models import ActivityState, Channel
from .services.base import BoardService

logger = get_logger(__name__)


class LifecycleEvent(str, Enum):
    """Things that happen to a channel."""

    WRITE = "write"  # content write or explicit keep-active
    LOCK = "lock"
    DELETE = "delete"
    GUARDED_DELETE = "guarded_delete"  # delete unless active


Outcome = ActivityState | type[BoardStoreError]

TRANSITIONS: dict[ActivityState, dict[LifecycleEvent, Outcome]] = {
    ActivityState.INACTIVE: {
        LifecycleEvent.WRITE: ActivityState.ACTIVE,
        LifecycleEvent.LOCK: ActivityState.LOCKED,
        LifecycleEvent.DELETE: ActivityState.DELETED,
        LifecycleEvent.GUARDED_DELETE: ActivityState.DELETED,
    },
    ActivityState.ACTIVE: {
        LifecycleEvent.WRITE: ActivityState.ACTIVE,
        LifecycleEvent.LOCK: ActivityState.LOCKED,
        LifecycleEvent.DELETE: ActivityState.DELETED,
        LifecycleEvent.GUARDED_DELETE: ChannelActive,
    },
    ActivityState.LOCKED: {
        LifecycleEvent.WRITE: ChannelLocked,
        LifecycleEvent.LOCK: ActivityState.LOCKED,
        LifecycleEvent.DELETE: ActivityState.DELETED,
        LifecycleEvent.GUARDED_DELETE: ActivityState.DELETED,
    },
    ActivityState.DELETED: {
        LifecycleEvent.WRITE: NotFound,
        LifecycleEvent.LOCK: NotFound,
        LifecycleEvent.DELETE: NotFound,
        LifecycleEvent.GUARDED_DELETE: NotFound,
    },
}


def next_state(
    current: ActivityState, event: LifecycleEvent, channel_id: str | None = None
) -> ActivityState:
    """Look up the state a channel moves to when ``event`` happens.

    Raises:
        ChannelLocked: On a write to a locked channel
        ChannelActive: On a guarded deletion of an active channel
        NotFound: On any event for a deleted channel
    """
    outcome = TRANSITIONS[current][event]
    if isinstance(outcome, ActivityState):
        return outcome

    message = f"Channel {channel_id or '<unknown>'} is {current.value}; cannot {event.value}"
    if issubclass(outcome, (ChannelLocked, ChannelActive)):
        raise outcome(message, channel_id)
    raise outcome(message)


class ChannelLifecycleManager:
    """Applies lifecycle transitions to channels held by the board service.

    The board service owns the state; every change is a conditional update on
    the state just read. When another client changed it first, the transition
    is evaluated again on the fresh state. States only move forward, so this
    settles within ``len(ActivityState)`` evaluations.
    """

    def __init__(self, boards: BoardService):
        self.boards = boards

    async def current_state(self, channel: Channel) -> ActivityState:
        fresh = await self.boards.get_channel(channel.channel_id)
        return fresh.activity_state

    async def ensure_writable(self, channel: Channel) -> None:
        """Fail fast when contents of ``channel`` may not be changed."""
        state = await self.current_state(channel)
        next_state(state, LifecycleEvent.WRITE, channel.channel_id)

    async def mark_active(self, channel: Channel) -> ActivityState:
        """Mark a channel as in use. Idempotent."""
        return await self._apply(channel.channel_id, LifecycleEvent.WRITE)

    async def lock_for_deletion(self, channel: Channel) -> ActivityState:
        """Block all further writes to a channel, for every participant."""
        state = await self._apply(channel.channel_id, LifecycleEvent.LOCK)
        logger.info("Channel locked for deletion", channel_id=channel.channel_id)
        return state

    async def request_deletion(
        self, channel: Channel, prevent_delete_active: bool = False
    ) -> ActivityState:
        """Destroy a channel.

        Args:
            channel: Channel to destroy
            prevent_delete_active: Refuse when the channel is active

        Raises:
            ChannelActive: If guarded and the channel is active; it stays usable
        """
        event = LifecycleEvent.GUARDED_DELETE if prevent_delete_active else LifecycleEvent.DELETE
        return await self._apply(channel.channel_id, event)

    async def _apply(self, channel_id: str, event: LifecycleEvent) -> ActivityState:
        for _ in range(len(ActivityState)):
            fresh = await self.boards.get_channel(channel_id)
            current = fresh.activity_state
            target = next_state(current, event, channel_id)

            try:
                if target is ActivityState.DELETED:
                    await self.boards.delete_channel(channel_id, if_state=current)
                    logger.info("Channel deleted", channel_id=channel_id, previous=current.value)
                elif target is not current:
                    await self.boards.update_activity_state(channel_id, target, if_state=current)
                    logger.info(
                        "Channel state changed",
                        channel_id=channel_id,
                        previous=current.value,
                        state=target.value,
                    )
            except ChannelStateConflict:
                logger.info(
                    "Channel state changed concurrently, re-evaluating",
                    channel_id=channel_id,
                    event=event.value,
                )
                continue

            return target

        raise ChannelStateConflict(f"Channel {channel_id} state kept changing during {event.value}")
