"""Tests for the channel lifecycle."""

from unittest.mock import AsyncMock

import pytest

from boardstore.errors import ChannelActive, ChannelLocked, ChannelStateConflict, NotFound
from boardstore.lifecycle import ChannelLifecycleManager, LifecycleEvent, next_state
from boardstore.models import ActivityState, Channel


def make_channel(state: ActivityState = ActivityState.INACTIVE) -> Channel:
    return Channel(
        channel_id="channel-1",
        channel_url="https://board.example.test/channels/channel-1",
        acl_url="https://board.example.test/channels/channel-1/acl",
        acl_url_link="https://board.example.test/conversations/c/acl",
        kms_resource_url="kms://resources/r",
        default_encryption_key_url="kms://keys/k",
        activity_state=state,
    )


def mock_boards(*states: ActivityState) -> AsyncMock:
    """Board service whose get_channel reports ``states`` in turn."""
    boards = AsyncMock()
    boards.get_channel.side_effect = [make_channel(state) for state in states]
    return boards


@pytest.mark.unit
class TestNextState:
    """Test the transition table."""

    @pytest.mark.parametrize(
        "current,event,expected",
        [
            (ActivityState.INACTIVE, LifecycleEvent.WRITE, ActivityState.ACTIVE),
            (ActivityState.ACTIVE, LifecycleEvent.WRITE, ActivityState.ACTIVE),
            (ActivityState.INACTIVE, LifecycleEvent.LOCK, ActivityState.LOCKED),
            (ActivityState.ACTIVE, LifecycleEvent.LOCK, ActivityState.LOCKED),
            (ActivityState.LOCKED, LifecycleEvent.LOCK, ActivityState.LOCKED),
            (ActivityState.ACTIVE, LifecycleEvent.DELETE, ActivityState.DELETED),
            (ActivityState.INACTIVE, LifecycleEvent.GUARDED_DELETE, ActivityState.DELETED),
            (ActivityState.LOCKED, LifecycleEvent.GUARDED_DELETE, ActivityState.DELETED),
        ],
    )
    def test_allowed_transitions(self, current, event, expected):
        assert next_state(current, event) is expected

    def test_write_to_locked_channel(self):
        with pytest.raises(ChannelLocked) as exc_info:
            next_state(ActivityState.LOCKED, LifecycleEvent.WRITE, "channel-1")

        assert exc_info.value.channel_id == "channel-1"

    def test_guarded_delete_of_active_channel(self):
        with pytest.raises(ChannelActive):
            next_state(ActivityState.ACTIVE, LifecycleEvent.GUARDED_DELETE, "channel-1")

    @pytest.mark.parametrize("event", list(LifecycleEvent))
    def test_deleted_is_terminal(self, event):
        with pytest.raises(NotFound):
            next_state(ActivityState.DELETED, event)


@pytest.mark.unit
class TestChannelLifecycleManager:
    """Test compare-and-set application of transitions."""

    @pytest.mark.asyncio
    async def test_mark_active_updates_inactive_channel(self):
        boards = mock_boards(ActivityState.INACTIVE)
        manager = ChannelLifecycleManager(boards)

        state = await manager.mark_active(make_channel())

        assert state is ActivityState.ACTIVE
        boards.update_activity_state.assert_awaited_once_with(
            "channel-1", ActivityState.ACTIVE, if_state=ActivityState.INACTIVE
        )

    @pytest.mark.asyncio
    async def test_mark_active_is_idempotent(self):
        boards = mock_boards(ActivityState.ACTIVE)
        manager = ChannelLifecycleManager(boards)

        assert await manager.mark_active(make_channel()) is ActivityState.ACTIVE
        boards.update_activity_state.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mark_active_on_locked_channel(self):
        manager = ChannelLifecycleManager(mock_boards(ActivityState.LOCKED))

        with pytest.raises(ChannelLocked):
            await manager.mark_active(make_channel())

    @pytest.mark.asyncio
    async def test_ensure_writable(self):
        manager = ChannelLifecycleManager(
            mock_boards(ActivityState.INACTIVE, ActivityState.LOCKED)
        )

        await manager.ensure_writable(make_channel())
        with pytest.raises(ChannelLocked):
            await manager.ensure_writable(make_channel())

    @pytest.mark.asyncio
    async def test_conflict_is_re_evaluated(self):
        # Another client locks the channel between our read and our write
        boards = mock_boards(ActivityState.INACTIVE, ActivityState.LOCKED)
        boards.update_activity_state.side_effect = ChannelStateConflict("changed")
        manager = ChannelLifecycleManager(boards)

        with pytest.raises(ChannelLocked):
            await manager.mark_active(make_channel())

        assert boards.get_channel.await_count == 2

    @pytest.mark.asyncio
    async def test_lock_retries_after_conflict(self):
        boards = mock_boards(ActivityState.INACTIVE, ActivityState.ACTIVE)
        boards.update_activity_state.side_effect = [ChannelStateConflict("changed"), None]
        manager = ChannelLifecycleManager(boards)

        state = await manager.lock_for_deletion(make_channel())

        assert state is ActivityState.LOCKED
        boards.update_activity_state.assert_awaited_with(
            "channel-1", ActivityState.LOCKED, if_state=ActivityState.ACTIVE
        )

    @pytest.mark.asyncio
    async def test_guarded_deletion_of_active_channel(self):
        boards = mock_boards(ActivityState.ACTIVE)
        manager = ChannelLifecycleManager(boards)

        with pytest.raises(ChannelActive):
            await manager.request_deletion(make_channel(), prevent_delete_active=True)

        boards.delete_channel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deletion(self):
        boards = mock_boards(ActivityState.ACTIVE)
        manager = ChannelLifecycleManager(boards)

        state = await manager.request_deletion(make_channel())

        assert state is ActivityState.DELETED
        boards.delete_channel.assert_awaited_once_with(
            "channel-1", if_state=ActivityState.ACTIVE
        )

    @pytest.mark.asyncio
    async def test_gives_up_when_state_keeps_changing(self):
        boards = AsyncMock()
        boards.get_channel.return_value = make_channel(ActivityState.INACTIVE)
        boards.update_activity_state.side_effect = ChannelStateConflict("changed")
        manager = ChannelLifecycleManager(boards)

        with pytest.raises(ChannelStateConflict, match="kept changing"):
            await manager.mark_active(make_channel())

        assert boards.get_channel.await_count == len(ActivityState)
