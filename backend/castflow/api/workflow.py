"""
Castflow Studio - Workflow API
==============================

Episode status, offered transitions, progress and history.
"""

from uuid import UUID

from fastapi import APIRouter, status

from castflow.api.deps import CurrentUser, DbSession, Hub
from castflow.core.collaboration import WorkflowEngine, workflow_progress
from castflow.core.collaboration.transitions import ACTION_LABELS, STEP_LABELS
from castflow.core.schemas import (
    TransitionOption,
    TransitionRequest,
    WorkflowProgressSchema,
    WorkflowResponse,
    WorkflowStateResponse,
)

router = APIRouter(prefix="/episodes", tags=["Workflow"])


@router.get(
    "/{episode_id}/workflow",
    response_model=WorkflowResponse,
    summary="Current status, allowed actions and history",
)
async def get_workflow(
    episode_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> WorkflowResponse:
    """
    Workflow view for the caller.

    available_transitions is already filtered by the caller's role; the
    engine still re-checks on every transition request.
    """
    engine = WorkflowEngine(db, hub)
    episode, role, targets = await engine.available_transitions_for(episode_id, current_user.id)
    history = await engine.get_workflow_history(episode_id)
    progress = workflow_progress(episode.current_status)

    return WorkflowResponse(
        episode_id=episode.id,
        current_status=episode.current_status,
        role=role,
        available_transitions=[
            TransitionOption(status=t, label=ACTION_LABELS[t]) for t in targets
        ],
        progress=WorkflowProgressSchema(
            steps=list(progress.steps),
            labels=[STEP_LABELS[s] for s in progress.steps],
            step_index=progress.step_index,
            is_detour=progress.is_detour,
        ),
        history=[WorkflowStateResponse.model_validate(h) for h in history],
    )


@router.post(
    "/{episode_id}/workflow/transition",
    response_model=WorkflowStateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Move the episode to a new status",
    responses={
        403: {"description": "Role may not enter the target status"},
        409: {"description": "Status changed concurrently"},
        422: {"description": "Transition not allowed from current status"},
    },
)
async def transition(
    episode_id: UUID,
    data: TransitionRequest,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> WorkflowStateResponse:
    state = await WorkflowEngine(db, hub).request_transition(
        episode_id, data.status, current_user.id, data.notes
    )
    return WorkflowStateResponse.model_validate(state)
