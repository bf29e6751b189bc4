"""
Presence Tracker
================

Heartbeat-based "who is viewing this episode" signal.

A row is live while is_active is set and last_seen falls inside the
PRESENCE_TTL_SECONDS window. Clients heartbeat every
PRESENCE_HEARTBEAT_SECONDS; a client that vanishes without calling leave()
simply ages out of the window.
"""

from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from castflow.core.collaboration.roster import RosterService
from castflow.core.config import settings
from castflow.core.models import UserPresence, utcnow
from castflow.core.realtime import ChangeEvent, RealtimeHub, Table, get_realtime_hub

logger = structlog.get_logger()


class PresenceTracker:
    """Upserted presence rows keyed by (user, episode)."""

    def __init__(
        self,
        db: AsyncSession,
        hub: Optional[RealtimeHub] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.db = db
        self.hub = hub or get_realtime_hub()
        self.roster = RosterService(db, self.hub)
        self.ttl = timedelta(
            seconds=settings.PRESENCE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        )

    async def heartbeat(
        self,
        user_id: UUID,
        episode_id: UUID,
        cursor_position: Optional[dict[str, Any]] = None,
    ) -> UserPresence:
        """Mark the user as viewing the episode now."""
        await self.roster.resolve_role(episode_id, user_id)
        now = utcnow()

        presence = await self._find(user_id, episode_id)
        if presence is None:
            presence = UserPresence(
                id=uuid4(),
                user_id=user_id,
                episode_id=episode_id,
                cursor_position=cursor_position,
                last_seen=now,
                is_active=True,
            )
            self.db.add(presence)
            try:
                await self.db.commit()
            except IntegrityError:
                # Two heartbeats raced on the first insert
                await self.db.rollback()
                presence = await self._find(user_id, episode_id)
                if presence is None:
                    raise
                self._touch(presence, cursor_position, now)
                await self.db.commit()
        else:
            self._touch(presence, cursor_position, now)
            await self.db.commit()

        presence_id = presence.id
        await self.hub.publish(Table.USER_PRESENCE, episode_id, ChangeEvent.UPDATE, presence_id)

        result = await self.db.execute(
            select(UserPresence)
            .where(UserPresence.id == presence_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def get_active_users(
        self,
        episode_id: UUID,
        exclude_user_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> list[UserPresence]:
        """Live presence rows for the episode, most recently seen first."""
        cutoff = (now or utcnow()) - self.ttl
        query = select(UserPresence).where(
            UserPresence.episode_id == episode_id,
            UserPresence.is_active.is_(True),
            UserPresence.last_seen >= cutoff,
        )
        if exclude_user_id is not None:
            query = query.where(UserPresence.user_id != exclude_user_id)
        result = await self.db.execute(
            query.order_by(UserPresence.last_seen.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def leave(self, user_id: UUID, episode_id: UUID) -> bool:
        """
        Mark the user inactive on the episode.

        Best-effort: failures are logged and reported as False.
        """
        try:
            result = await self.db.execute(
                update(UserPresence)
                .where(UserPresence.user_id == user_id, UserPresence.episode_id == episode_id)
                .values(is_active=False)
                .execution_options(synchronize_session="evaluate")
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning(
                "presence_leave_failed",
                user_id=str(user_id),
                episode_id=str(episode_id),
                error=str(e),
            )
            return False

        if result.rowcount:
            await self.hub.publish(Table.USER_PRESENCE, episode_id, ChangeEvent.UPDATE)
        return True

    async def _find(self, user_id: UUID, episode_id: UUID) -> Optional[UserPresence]:
        result = await self.db.execute(
            select(UserPresence).where(
                UserPresence.user_id == user_id,
                UserPresence.episode_id == episode_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _touch(presence: UserPresence, cursor_position: Optional[dict[str, Any]], now: datetime) -> None:
        presence.last_seen = now
        presence.is_active = True
        if cursor_position is not None:
            presence.cursor_position = cursor_position
