"""
Castflow Studio - Comments API
==============================

Threaded episode comments, status changes and reactions.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from castflow.api.deps import CurrentUser, DbSession, Hub
from castflow.core.collaboration import CommentStore, comments_for_section
from castflow.core.collaboration.comments import CommentThread
from castflow.core.schemas import (
    CommentCreate,
    CommentResponse,
    CommentStatusUpdate,
    CommentThreadResponse,
    ReactionRequest,
    ReactionResponse,
)

router = APIRouter(tags=["Comments"])


def _thread_response(thread: CommentThread) -> CommentThreadResponse:
    base = CommentResponse.model_validate(thread.comment)
    return CommentThreadResponse(
        **base.model_dump(),
        replies=[CommentResponse.model_validate(r) for r in thread.replies],
    )


@router.get(
    "/episodes/{episode_id}/comments",
    response_model=list[CommentThreadResponse],
    summary="Comment threads, oldest first",
)
async def list_comments(
    episode_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
    section: Optional[str] = Query(
        None,
        description="Content section name; keeps only threads anchored in its current text",
    ),
) -> list[CommentThreadResponse]:
    store = CommentStore(db, hub)
    episode = await store.roster.get_episode(episode_id)
    await store.roster.resolve_role(episode_id, current_user.id)

    threads = await store.get_comments(episode_id)
    if section is not None:
        section_text = episode.content.get(section)
        if not isinstance(section_text, str):
            section_text = ""
        anchored = {c.id for c in comments_for_section([t.comment for t in threads], section_text)}
        threads = [t for t in threads if t.comment.id in anchored]

    return [_thread_response(t) for t in threads]


@router.post(
    "/episodes/{episode_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a comment or reply",
)
async def add_comment(
    episode_id: UUID,
    data: CommentCreate,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> CommentResponse:
    comment = await CommentStore(db, hub).add_comment(
        episode_id,
        current_user.id,
        data.content,
        text_selection=data.text_selection.model_dump() if data.text_selection else None,
        parent_id=data.parent_id,
        priority=data.priority,
    )
    return CommentResponse.model_validate(comment)


@router.patch(
    "/comments/{comment_id}/status",
    response_model=CommentResponse,
    summary="Set a comment's status",
)
async def update_comment_status(
    comment_id: UUID,
    data: CommentStatusUpdate,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> CommentResponse:
    comment = await CommentStore(db, hub).update_comment_status(
        comment_id, data.status, current_user.id
    )
    return CommentResponse.model_validate(comment)


@router.put(
    "/comments/{comment_id}/reaction",
    response_model=ReactionResponse,
    summary="Set the caller's reaction on a comment",
)
async def set_reaction(
    comment_id: UUID,
    data: ReactionRequest,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> ReactionResponse:
    reaction = await CommentStore(db, hub).add_reaction(comment_id, current_user.id, data.emoji)
    return ReactionResponse.model_validate(reaction)
