"""
Notification Fan-out
====================

Creates per-recipient notification rows for workflow and comment events,
and serves the recipient's read/unread operations.

Fan-out is best-effort: it runs after the triggering write has been
committed, and a failure here is logged and swallowed so the primary
action still succeeds.
"""

from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from castflow.core.collaboration.errors import NotFoundError
from castflow.core.config import settings
from castflow.core.models import EpisodeCollaborator, Notification, NotificationType
from castflow.core.realtime import ChangeEvent, RealtimeHub, Table, get_realtime_hub

logger = structlog.get_logger()


def unread_count(notifications: Iterable[Notification]) -> int:
    """Count unread rows in an already loaded list."""
    return sum(1 for n in notifications if not n.read)


class NotificationService:
    """Notification storage, fan-out and read tracking."""

    def __init__(self, db: AsyncSession, hub: Optional[RealtimeHub] = None):
        self.db = db
        self.hub = hub or get_realtime_hub()

    async def collaborator_ids(self, episode_id: UUID) -> list[UUID]:
        result = await self.db.execute(
            select(EpisodeCollaborator.user_id)
            .where(EpisodeCollaborator.episode_id == episode_id)
            .order_by(EpisodeCollaborator.created_at)
        )
        return list(result.scalars().all())

    async def notify(
        self,
        user_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> Notification:
        """Create a single notification for one recipient."""
        notification = Notification(
            id=uuid4(),
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            data=data or {},
            read=False,
        )
        self.db.add(notification)
        await self.db.commit()

        await self.hub.publish(Table.NOTIFICATIONS, user_id, ChangeEvent.INSERT, notification.id)
        return notification

    async def fan_out(
        self,
        episode_id: UUID,
        actor_id: UUID,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> list[Notification]:
        """
        Notify every collaborator on the episode except the actor.

        No batching or deduplication: each call writes one row per recipient.
        """
        try:
            recipients = [uid for uid in await self.collaborator_ids(episode_id) if uid != actor_id]
            created: list[Notification] = []
            for recipient_id in recipients:
                notification = Notification(
                    id=uuid4(),
                    user_id=recipient_id,
                    type=type,
                    title=title,
                    message=message,
                    data=dict(data or {}),
                    read=False,
                )
                self.db.add(notification)
                created.append(notification)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning(
                "notification_fan_out_failed",
                episode_id=str(episode_id),
                type=type.value,
                error=str(e),
            )
            return []

        for notification in created:
            await self.hub.publish(
                Table.NOTIFICATIONS,
                notification.user_id,
                ChangeEvent.INSERT,
                notification.id,
            )

        logger.info(
            "notification_fan_out",
            episode_id=str(episode_id),
            type=type.value,
            recipients=len(created),
        )
        return created

    # ==========================================================================
    # Recipient operations
    # ==========================================================================

    async def list_notifications(
        self,
        user_id: UUID,
        limit: Optional[int] = None,
        unread_only: bool = False,
    ) -> list[Notification]:
        """Newest first, capped at NOTIFICATION_FETCH_LIMIT by default."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.read.is_(False))
        query = query.order_by(Notification.created_at.desc()).limit(
            limit or settings.NOTIFICATION_FETCH_LIMIT
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def mark_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notification not found")

        if not notification.read:
            notification.read = True
            await self.db.commit()
            await self.hub.publish(Table.NOTIFICATIONS, user_id, ChangeEvent.UPDATE, notification.id)
        return notification

    async def mark_all_read(self, user_id: UUID) -> int:
        """Flip every unread row of the user in one UPDATE. Returns rows changed."""
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
            .execution_options(synchronize_session="evaluate")
        )
        await self.db.commit()

        changed = result.rowcount or 0
        if changed:
            await self.hub.publish(Table.NOTIFICATIONS, user_id, ChangeEvent.UPDATE)
        return changed
