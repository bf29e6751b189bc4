"""
Comment Thread Store
====================

Threaded, reactable annotations on an episode. A comment may be anchored
to a text span ({start, end, text}); anchoring is resolved at display time
by substring match against the section's current text.

Threads are one level deep: a reply to a reply is stored but never shown
under either comment.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from castflow.core.collaboration.errors import NotFoundError, ValidationError
from castflow.core.collaboration.notifications import NotificationService
from castflow.core.collaboration.roster import RosterService
from castflow.core.models import (
    CommentPriority,
    CommentStatus,
    EpisodeComment,
    EpisodeReaction,
    NotificationType,
)
from castflow.core.realtime import ChangeEvent, RealtimeHub, Table, get_realtime_hub

logger = structlog.get_logger()


@dataclass
class CommentThread:
    """A top-level comment with its direct replies, oldest first."""
    comment: EpisodeComment
    replies: list[EpisodeComment] = field(default_factory=list)


def build_threads(comments: Iterable[EpisodeComment]) -> list[CommentThread]:
    """
    Group comments (already ordered by created_at) into one-level threads.

    Top-level comments come back in order; each carries the comments whose
    parent_id is its id.
    """
    comments = list(comments)
    threads: dict[UUID, CommentThread] = {
        c.id: CommentThread(comment=c) for c in comments if c.parent_id is None
    }
    for c in comments:
        if c.parent_id is not None and c.parent_id in threads:
            threads[c.parent_id].replies.append(c)
    return list(threads.values())


def comments_for_section(
    comments: Iterable[EpisodeComment],
    section_text: str,
) -> list[EpisodeComment]:
    """Comments whose anchored text still occurs in `section_text`."""
    matched = []
    for comment in comments:
        selection = comment.text_selection or {}
        text = selection.get("text")
        if text and section_text and text in section_text:
            matched.append(comment)
    return matched


def _validate_selection(text_selection: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if text_selection is None:
        return None
    try:
        start = int(text_selection["start"])
        end = int(text_selection["end"])
        text = str(text_selection["text"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("text_selection needs integer start, end and a text")
    if start < 0 or end < start:
        raise ValidationError("text_selection range is invalid", {"start": start, "end": end})
    return {"start": start, "end": end, "text": text}


class CommentStore:
    """Comment persistence, reactions and comment fan-out."""

    def __init__(self, db: AsyncSession, hub: Optional[RealtimeHub] = None):
        self.db = db
        self.hub = hub or get_realtime_hub()
        self.roster = RosterService(db, self.hub)
        self.notifications = NotificationService(db, self.hub)

    async def add_comment(
        self,
        episode_id: UUID,
        user_id: UUID,
        content: str,
        text_selection: Optional[dict[str, Any]] = None,
        parent_id: Optional[UUID] = None,
        priority: CommentPriority = CommentPriority.MEDIUM,
    ) -> EpisodeComment:
        """Add a comment or a reply and notify the other collaborators."""
        await self.roster.resolve_role(episode_id, user_id)

        if not content or not content.strip():
            raise ValidationError("Comment content cannot be empty")
        selection = _validate_selection(text_selection)

        if parent_id is not None:
            parent = await self.db.get(EpisodeComment, parent_id)
            if parent is None or parent.episode_id != episode_id:
                raise ValidationError(
                    "Parent comment does not belong to this episode",
                    {"parent_id": str(parent_id)},
                )

        comment = EpisodeComment(
            id=uuid4(),
            episode_id=episode_id,
            user_id=user_id,
            parent_id=parent_id,
            content=content,
            text_selection=selection,
            status=CommentStatus.OPEN,
            priority=CommentPriority(priority),
        )
        self.db.add(comment)
        await self.db.commit()
        comment_id = comment.id

        await self.notifications.fan_out(
            episode_id,
            user_id,
            NotificationType.COMMENT_ADDED,
            "New Comment",
            "New comment on episode",
            {"episode_id": str(episode_id), "comment_id": str(comment_id)},
        )
        await self.hub.publish(Table.EPISODE_COMMENTS, episode_id, ChangeEvent.INSERT, comment_id)

        return await self._load(comment_id)

    async def get_comments(self, episode_id: UUID) -> list[CommentThread]:
        result = await self.db.execute(
            select(EpisodeComment)
            .where(EpisodeComment.episode_id == episode_id)
            .order_by(EpisodeComment.created_at)
            .execution_options(populate_existing=True)
        )
        return build_threads(result.scalars().all())

    async def get_comment(self, comment_id: UUID) -> EpisodeComment:
        comment = await self.db.get(EpisodeComment, comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        return comment

    async def update_comment_status(
        self,
        comment_id: UUID,
        status: CommentStatus,
        acting_user_id: UUID,
    ) -> EpisodeComment:
        """Set any status from any status."""
        comment = await self.get_comment(comment_id)
        await self.roster.resolve_role(comment.episode_id, acting_user_id)

        comment.status = CommentStatus(status)
        await self.db.commit()

        await self.hub.publish(
            Table.EPISODE_COMMENTS, comment.episode_id, ChangeEvent.UPDATE, comment.id
        )
        return await self._load(comment.id)

    async def add_reaction(self, comment_id: UUID, user_id: UUID, emoji: str) -> EpisodeReaction:
        """Set the user's reaction on a comment. One per user; last write wins."""
        if not emoji or not emoji.strip():
            raise ValidationError("Reaction emoji cannot be empty")

        comment = await self.get_comment(comment_id)
        episode_id = comment.episode_id
        await self.roster.resolve_role(episode_id, user_id)

        reaction = await self._find_reaction(comment_id, user_id)
        if reaction is None:
            reaction = EpisodeReaction(
                id=uuid4(),
                comment_id=comment_id,
                user_id=user_id,
                emoji=emoji,
            )
            self.db.add(reaction)
            try:
                await self.db.commit()
            except IntegrityError:
                # Concurrent first reaction from the same user
                await self.db.rollback()
                reaction = await self._find_reaction(comment_id, user_id)
                if reaction is None:
                    raise
                reaction.emoji = emoji
                await self.db.commit()
        else:
            reaction.emoji = emoji
            await self.db.commit()

        logger.debug("comment_reaction", comment_id=str(comment_id), user_id=str(user_id), emoji=emoji)
        await self.hub.publish(Table.EPISODE_REACTIONS, episode_id, ChangeEvent.UPDATE, reaction.id)

        result = await self.db.execute(
            select(EpisodeReaction)
            .where(EpisodeReaction.id == reaction.id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _find_reaction(self, comment_id: UUID, user_id: UUID) -> Optional[EpisodeReaction]:
        result = await self.db.execute(
            select(EpisodeReaction).where(
                EpisodeReaction.comment_id == comment_id,
                EpisodeReaction.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def _load(self, comment_id: UUID) -> EpisodeComment:
        result = await self.db.execute(
            select(EpisodeComment)
            .where(EpisodeComment.id == comment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
