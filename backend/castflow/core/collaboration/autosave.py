"""
Auto-Save & Version History
===========================

VersionStore writes full content snapshots with per-episode version numbers.
AutoSaveCoordinator debounces a stream of content changes into one save per
pause in activity. AutoSaveRegistry keeps one coordinator per
(user, episode) for the API's draft endpoints.
"""

import asyncio
import copy
import json
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from castflow.core.collaboration.errors import NotFoundError, VersionConflictError
from castflow.core.collaboration.roster import RosterService
from castflow.core.config import settings
from castflow.core.models import Episode, VersionHistory, utcnow
from castflow.core.realtime import ChangeEvent, RealtimeHub, Table, get_realtime_hub

logger = structlog.get_logger()


# ==========================================================================
# Version Store
# ==========================================================================

class VersionStore:
    """
    Snapshot persistence.

    version_number is max + 1, guarded by the (episode_id, version_number)
    unique constraint; a losing concurrent insert re-reads and retries.
    """

    def __init__(self, db: AsyncSession, hub: Optional[RealtimeHub] = None):
        self.db = db
        self.hub = hub or get_realtime_hub()
        self.roster = RosterService(db, self.hub)

    async def next_version_number(self, episode_id: UUID) -> int:
        result = await self.db.execute(
            select(func.max(VersionHistory.version_number)).where(
                VersionHistory.episode_id == episode_id
            )
        )
        return (result.scalar_one_or_none() or 0) + 1

    async def save_version(
        self,
        episode_id: UUID,
        content: dict[str, Any],
        user_id: UUID,
        description: Optional[str] = None,
    ) -> VersionHistory:
        """Record a snapshot without touching the episode's content."""
        await self.roster.resolve_role(episode_id, user_id)
        return await self._insert_version(
            episode_id,
            content,
            user_id,
            description or settings.AUTOSAVE_DESCRIPTION,
            apply_content=False,
        )

    async def save_draft(
        self,
        episode_id: UUID,
        content: dict[str, Any],
        user_id: UUID,
        description: Optional[str] = None,
    ) -> VersionHistory:
        """Write `content` to the episode and snapshot it in one transaction."""
        await self.roster.resolve_role(episode_id, user_id)
        return await self._insert_version(
            episode_id,
            content,
            user_id,
            description or settings.AUTOSAVE_DESCRIPTION,
            apply_content=True,
        )

    async def get_version_history(self, episode_id: UUID) -> list[VersionHistory]:
        result = await self.db.execute(
            select(VersionHistory)
            .where(VersionHistory.episode_id == episode_id)
            .order_by(VersionHistory.version_number.desc())
        )
        return list(result.scalars().all())

    async def restore_version(
        self,
        episode_id: UUID,
        version_id: UUID,
        user_id: UUID,
    ) -> VersionHistory:
        """
        Put an old snapshot back into the episode.

        The restore itself is recorded as a new version so history stays
        append-only.
        """
        await self.roster.resolve_role(episode_id, user_id)

        version = await self.db.get(VersionHistory, version_id)
        if version is None or version.episode_id != episode_id:
            raise NotFoundError("Version not found", {"version_id": str(version_id)})

        return await self._insert_version(
            episode_id,
            copy.deepcopy(version.content_snapshot),
            user_id,
            f"Restored version {version.version_number}",
            apply_content=True,
        )

    async def _insert_version(
        self,
        episode_id: UUID,
        content: dict[str, Any],
        user_id: UUID,
        description: str,
        apply_content: bool,
    ) -> VersionHistory:
        max_retries = settings.VERSION_SAVE_MAX_RETRIES
        for attempt in range(1, max_retries + 1):
            if apply_content:
                episode = await self.roster.get_episode(episode_id)
                episode.content = copy.deepcopy(content)
                episode.updated_at = utcnow()

            version_number = await self.next_version_number(episode_id)
            version = VersionHistory(
                id=uuid4(),
                episode_id=episode_id,
                content_snapshot=copy.deepcopy(content),
                changed_by=user_id,
                change_description=description,
                version_number=version_number,
            )
            self.db.add(version)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.warning(
                    "version_number_conflict",
                    episode_id=str(episode_id),
                    version_number=version_number,
                    attempt=attempt,
                )
                continue

            version_id = version.id
            logger.info(
                "version_saved",
                episode_id=str(episode_id),
                version_number=version_number,
                description=description,
            )
            if apply_content:
                await self.hub.publish(Table.EPISODES, episode_id, ChangeEvent.UPDATE, episode_id)
            await self.hub.publish(Table.VERSION_HISTORY, episode_id, ChangeEvent.INSERT, version_id)

            result = await self.db.execute(
                select(VersionHistory)
                .where(VersionHistory.id == version_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one()

        raise VersionConflictError(
            "Could not allocate a version number",
            {"episode_id": str(episode_id), "attempts": max_retries},
        )


# ==========================================================================
# Debounce Coordinator
# ==========================================================================

class AutoSaveStatus(str, Enum):
    SAVED = "saved"
    UNSAVED = "unsaved"
    SAVING = "saving"
    ERROR = "error"


SaveCallback = Callable[[Any], Awaitable[Any]]


class AutoSaveCoordinator:
    """
    Debounces content changes into saves.

    A save fires `delay` seconds after the last change; every new change
    restarts the timer. Content whose canonical JSON equals the last seen
    content is ignored. At most one save runs at a time.
    """

    def __init__(
        self,
        save: SaveCallback,
        delay: Optional[float] = None,
        initial: Any = None,
    ):
        self._save = save
        self.delay = settings.AUTOSAVE_DELAY_SECONDS if delay is None else delay
        self._last_serialized: Optional[str] = (
            self.serialize(initial) if initial is not None else None
        )
        self._pending: Any = None
        self._has_pending = False
        self._timer: Optional[asyncio.Task] = None
        self._save_lock = asyncio.Lock()

        self.status = AutoSaveStatus.SAVED
        self.last_saved: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.save_count = 0

    @staticmethod
    def serialize(content: Any) -> str:
        return json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)

    @property
    def has_pending(self) -> bool:
        return self._has_pending

    @property
    def is_scheduled(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def notify_change(self, content: Any) -> bool:
        """
        Buffer new content and (re)start the timer.

        Returns False when the content is unchanged and nothing was scheduled.
        """
        serialized = self.serialize(content)
        if serialized == self._last_serialized:
            return False

        self._last_serialized = serialized
        self._pending = copy.deepcopy(content)
        self._has_pending = True
        self.status = AutoSaveStatus.UNSAVED

        self._cancel_timer()
        self._timer = asyncio.create_task(self._fire_after_delay())
        return True

    async def flush(self) -> bool:
        """
        Save pending content now.

        Returns False if there was nothing to save. Save errors are re-raised.
        """
        self._cancel_timer()
        return await self._save_pending()

    def cancel(self) -> None:
        """Drop the pending timer. Buffered content stays pending."""
        self._cancel_timer()

    def state(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "has_unsaved_changes": self._has_pending,
            "last_saved": self.last_saved,
            "last_error": self.last_error,
            "save_count": self.save_count,
        }

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            if self._timer is not asyncio.current_task():
                self._timer.cancel()
        self._timer = None

    async def _fire_after_delay(self) -> None:
        await asyncio.sleep(self.delay)
        # Past the debounce window; a new change must not cancel the save
        self._timer = None
        try:
            await self._save_pending()
        except Exception:
            # Recorded in status/last_error by _save_pending
            return

    async def _save_pending(self) -> bool:
        async with self._save_lock:
            if not self._has_pending:
                return False

            content = self._pending
            self._has_pending = False
            self.status = AutoSaveStatus.SAVING
            try:
                await self._save(content)
            except Exception as e:
                if not self._has_pending:
                    self._pending = content
                    self._has_pending = True
                self.status = AutoSaveStatus.ERROR
                self.last_error = str(e)
                logger.error("autosave_failed", error=str(e))
                raise

            self.save_count += 1
            self.last_saved = utcnow()
            self.last_error = None
            self.status = AutoSaveStatus.UNSAVED if self._has_pending else AutoSaveStatus.SAVED
            return True


# ==========================================================================
# Registry
# ==========================================================================

class AutoSaveRegistry:
    """One coordinator per (user, episode), each saving through its own session."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        delay: Optional[float] = None,
        hub: Optional[RealtimeHub] = None,
    ):
        if session_factory is None:
            from castflow.core.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory
        self.delay = delay
        self.hub = hub
        self._coordinators: dict[tuple[UUID, UUID], AutoSaveCoordinator] = {}

    def get(self, user_id: UUID, episode_id: UUID) -> Optional[AutoSaveCoordinator]:
        return self._coordinators.get((user_id, episode_id))

    def get_or_create(
        self,
        user_id: UUID,
        episode_id: UUID,
        initial: Any = None,
    ) -> AutoSaveCoordinator:
        key = (user_id, episode_id)
        coordinator = self._coordinators.get(key)
        if coordinator is None:
            coordinator = AutoSaveCoordinator(
                self._make_save(user_id, episode_id),
                delay=self.delay,
                initial=initial,
            )
            self._coordinators[key] = coordinator
        return coordinator

    def _make_save(self, user_id: UUID, episode_id: UUID) -> SaveCallback:
        async def save(content: Any) -> None:
            async with self.session_factory() as session:
                store = VersionStore(session, self.hub)
                await store.save_draft(episode_id, content, user_id)
        return save

    async def release(self, user_id: UUID, episode_id: UUID) -> bool:
        """
        Flush and drop the user's coordinator when they leave the episode.

        A failed flush is logged and the coordinator is kept with its timer
        cancelled, so the content stays pending for flush_all.
        """
        coordinator = self._coordinators.get((user_id, episode_id))
        if coordinator is None:
            return False
        try:
            saved = await coordinator.flush()
        except Exception as e:
            coordinator.cancel()
            logger.error(
                "autosave_release_failed",
                user_id=str(user_id),
                episode_id=str(episode_id),
                error=str(e),
            )
            return False
        await self.discard(user_id, episode_id)
        return saved

    async def discard(self, user_id: UUID, episode_id: UUID) -> None:
        coordinator = self._coordinators.pop((user_id, episode_id), None)
        if coordinator is not None:
            coordinator.cancel()

    async def flush_all(self) -> int:
        """Flush every coordinator with pending content. Returns saves made."""
        saved = 0
        for (user_id, episode_id), coordinator in list(self._coordinators.items()):
            try:
                if await coordinator.flush():
                    saved += 1
            except Exception as e:
                logger.error(
                    "autosave_flush_failed",
                    user_id=str(user_id),
                    episode_id=str(episode_id),
                    error=str(e),
                )
        return saved

    def __len__(self) -> int:
        return len(self._coordinators)


_autosave_registry: Optional[AutoSaveRegistry] = None


def get_autosave_registry() -> AutoSaveRegistry:
    """Get or create the process-wide registry"""
    global _autosave_registry
    if _autosave_registry is None:
        _autosave_registry = AutoSaveRegistry()
    return _autosave_registry
