"""
Castflow Studio - Presence Tests
================================
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from castflow.core.collaboration import PermissionDeniedError, PresenceTracker
from castflow.core.models import Episode, User, UserPresence, utcnow
from castflow.core.realtime import RealtimeHub, Table


async def _seen(db: AsyncSession, user: User, episode: Episode, minutes_ago: float, active: bool = True) -> None:
    db.add(UserPresence(
        id=uuid4(),
        user_id=user.id,
        episode_id=episode.id,
        last_seen=utcnow() - timedelta(minutes=minutes_ago),
        is_active=active,
    ))
    await db.commit()


class TestHeartbeat:

    async def test_one_row_per_user_and_episode(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
    ):
        tracker = PresenceTracker(db_session, hub)
        first = await tracker.heartbeat(editor.id, episode.id, {"section": "transcript", "position": 10})
        second = await tracker.heartbeat(editor.id, episode.id, {"section": "summary", "position": 3})

        count = await db_session.execute(select(func.count()).select_from(UserPresence))
        assert count.scalar_one() == 1
        assert first.id == second.id
        assert second.cursor_position == {"section": "summary", "position": 3}
        assert second.is_active is True

    async def test_heartbeat_without_cursor_keeps_cursor(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
    ):
        tracker = PresenceTracker(db_session, hub)
        await tracker.heartbeat(editor.id, episode.id, {"section": "transcript", "position": 10})
        presence = await tracker.heartbeat(editor.id, episode.id)

        assert presence.cursor_position == {"section": "transcript", "position": 10}

    async def test_heartbeat_reactivates(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
    ):
        tracker = PresenceTracker(db_session, hub)
        await tracker.heartbeat(editor.id, episode.id)
        await tracker.leave(editor.id, episode.id)
        presence = await tracker.heartbeat(editor.id, episode.id)

        assert presence.is_active is True

    async def test_outsider_rejected(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        outsider: User,
    ):
        with pytest.raises(PermissionDeniedError):
            await PresenceTracker(db_session, hub).heartbeat(outsider.id, episode.id)

    async def test_change_published(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
    ):
        received = []
        hub.subscribe(Table.USER_PRESENCE, episode.id, received.append)

        await PresenceTracker(db_session, hub).heartbeat(editor.id, episode.id)

        assert len(received) == 1


class TestActiveUsers:

    async def test_ttl_window(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
        va: User,
    ):
        await _seen(db_session, editor, episode, minutes_ago=4)
        await _seen(db_session, va, episode, minutes_ago=6)

        active = await PresenceTracker(db_session, hub).get_active_users(episode.id)

        assert [p.user_id for p in active] == [editor.id]

    async def test_inactive_rows_excluded(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
    ):
        await _seen(db_session, editor, episode, minutes_ago=0, active=False)

        assert await PresenceTracker(db_session, hub).get_active_users(episode.id) == []

    async def test_excludes_caller_and_orders_by_recency(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        host: User,
        editor: User,
        marketer: User,
    ):
        await _seen(db_session, host, episode, minutes_ago=0)
        await _seen(db_session, editor, episode, minutes_ago=2)
        await _seen(db_session, marketer, episode, minutes_ago=1)

        active = await PresenceTracker(db_session, hub).get_active_users(episode.id, exclude_user_id=host.id)

        assert [p.user_id for p in active] == [marketer.id, editor.id]
        assert active[0].user.name == marketer.name

    async def test_custom_ttl(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
    ):
        await _seen(db_session, editor, episode, minutes_ago=2)

        active = await PresenceTracker(db_session, hub, ttl_seconds=60).get_active_users(episode.id)

        assert active == []

    async def test_zero_ttl_is_not_the_default(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
    ):
        await _seen(db_session, editor, episode, minutes_ago=1)

        tracker = PresenceTracker(db_session, hub, ttl_seconds=0)

        assert tracker.ttl.total_seconds() == 0
        assert await tracker.get_active_users(episode.id) == []


class TestLeave:

    async def test_leave_hides_user(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
    ):
        tracker = PresenceTracker(db_session, hub)
        await tracker.heartbeat(editor.id, episode.id)

        assert await tracker.leave(editor.id, episode.id) is True
        assert await tracker.get_active_users(episode.id) == []

    async def test_leave_without_row_is_harmless(
        self,
        db_session: AsyncSession,
        hub: RealtimeHub,
        episode: Episode,
        editor: User,
    ):
        assert await PresenceTracker(db_session, hub).leave(editor.id, episode.id) is True
