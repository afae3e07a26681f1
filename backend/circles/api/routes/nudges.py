"""Nudge endpoints - sunset reminders and the acquainted annual review."""

from fastapi import APIRouter, Depends, Response

from circles.api.deps import get_workspace, result_response
from circles.core.workspace import CircleWorkspace
from circles.schemas.feed import (
    ACQUAINTED_ACTION_LABELS,
    AcquaintedNudgeBatch,
    NudgeResponse,
    SunsetNudge,
)
from circles.schemas.friend import OperationResult, Tier

router = APIRouter()


@router.get("/nudges", response_model=list[SunsetNudge])
async def list_nudges(tier: Tier | None = None, workspace: CircleWorkspace = Depends(get_workspace)):
    """Active nudges for today. Re-querying the same day yields the same ids."""
    if tier is not None:
        return workspace.get_nudges_for_tier(tier)
    return workspace.generate_nudges()


@router.post("/nudges/{nudge_id}/dismiss", status_code=204)
async def dismiss_nudge(nudge_id: str, workspace: CircleWorkspace = Depends(get_workspace)):
    workspace.dismiss_nudge(nudge_id)
    return Response(status_code=204)


@router.get("/nudges/acquainted", response_model=AcquaintedNudgeBatch)
async def acquainted_batch(workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.acquainted_batch()


@router.get("/nudges/acquainted/actions")
async def acquainted_actions():
    """Answer choices for an annual review, with display labels."""
    return [{"action": action.value, "label": label} for action, label in ACQUAINTED_ACTION_LABELS.items()]


@router.post("/nudges/acquainted/{friend_id}", response_model=OperationResult)
async def respond_to_acquainted_nudge(
    friend_id: str, data: NudgeResponse, workspace: CircleWorkspace = Depends(get_workspace)
):
    """Keep, promote to outer, remove, or snooze a reviewed contact."""
    return result_response(workspace.respond_to_nudge(friend_id, data.action))
