"""Friend endpoints - roster CRUD, tier moves, ordering and capacity."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response

from circles.api.deps import get_circle_service, get_workspace, result_response
from circles.core.workspace import CircleWorkspace
from circles.schemas.contact import PromotionInfo
from circles.schemas.friend import (
    Friend,
    FriendCreate,
    FriendResult,
    FriendUpdate,
    MoveRequest,
    OperationResult,
    ReorderRequest,
    Tier,
    TierCapacity,
)
from circles.services.circle_service import CircleService

router = APIRouter()


def _get_friend_or_404(workspace: CircleWorkspace, friend_id: str) -> Friend:
    friend = workspace.store.get_friend(friend_id)
    if friend is None:
        raise HTTPException(status_code=404, detail="Friend not found")
    return friend


@router.get("/friends", response_model=list[Friend])
async def list_friends(tier: Tier | None = None, workspace: CircleWorkspace = Depends(get_workspace)):
    """All friends, or one tier in display order."""
    if tier is not None:
        return workspace.store.get_friends_in_tier(tier)
    return workspace.store.all_friends()


@router.post("/friends", response_model=FriendResult, status_code=201)
async def add_friend(data: FriendCreate, workspace: CircleWorkspace = Depends(get_workspace)):
    """Add a friend to a tier. 409 with the result body when the tier is full."""
    return result_response(workspace.store.add_friend(data), success_status=201)


@router.get("/friends/{friend_id}", response_model=Friend)
async def get_friend(friend_id: str, workspace: CircleWorkspace = Depends(get_workspace)):
    return _get_friend_or_404(workspace, friend_id)


@router.patch("/friends/{friend_id}", response_model=Friend)
async def update_friend(
    friend_id: str, data: FriendUpdate, workspace: CircleWorkspace = Depends(get_workspace)
):
    """Update contact fields. The tier only changes through /move."""
    return workspace.store.update_friend(friend_id, data)


@router.delete("/friends/{friend_id}", status_code=204)
async def remove_friend(friend_id: str, workspace: CircleWorkspace = Depends(get_workspace)):
    workspace.store.remove_friend(friend_id)
    return Response(status_code=204)


@router.post("/friends/{friend_id}/move", response_model=OperationResult)
async def move_friend(
    friend_id: str, data: MoveRequest, workspace: CircleWorkspace = Depends(get_workspace)
):
    result = workspace.store.move_friend(friend_id, data.target_tier)
    if result.reason == "not_found":
        raise HTTPException(status_code=404, detail=result.error)
    return result_response(result)


@router.post("/friends/{friend_id}/promote", response_model=OperationResult)
async def promote_friend(
    friend_id: str, target: Tier | None = None, workspace: CircleWorkspace = Depends(get_workspace)
):
    """Move one step closer along core / inner / outer / acquainted."""
    _get_friend_or_404(workspace, friend_id)
    return result_response(workspace.lifecycle.promote(friend_id, target))


@router.post("/friends/{friend_id}/demote", response_model=OperationResult)
async def demote_friend(
    friend_id: str, target: Tier | None = None, workspace: CircleWorkspace = Depends(get_workspace)
):
    _get_friend_or_404(workspace, friend_id)
    return result_response(workspace.lifecycle.demote(friend_id, target))


@router.post("/friends/{friend_id}/contacted", response_model=Friend)
async def mark_contacted(
    friend_id: str, when: datetime | None = None, workspace: CircleWorkspace = Depends(get_workspace)
):
    """Record a deep contact; resets the friend's sunset clock."""
    return workspace.store.touch_contacted(friend_id, when)


@router.get("/promotion-options", response_model=list[PromotionInfo])
async def promotion_options(workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.lifecycle.promotion_options()


# --- Tiers ---


@router.get("/tiers", response_model=list[TierCapacity])
async def list_tier_capacities(workspace: CircleWorkspace = Depends(get_workspace)):
    return [workspace.store.get_tier_capacity(tier) for tier in Tier]


@router.get("/tiers/{tier}/capacity", response_model=TierCapacity)
async def get_tier_capacity(tier: Tier, workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.store.get_tier_capacity(tier)


@router.get("/tiers/{tier}/friends", response_model=list[Friend])
async def get_friends_in_tier(tier: Tier, workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.store.get_friends_in_tier(tier)


@router.put("/tiers/{tier}/order", response_model=list[Friend])
async def reorder_tier(
    tier: Tier, data: ReorderRequest, workspace: CircleWorkspace = Depends(get_workspace)
):
    """Pin the given order; friends left out fall back to alphabetical placement."""
    workspace.store.reorder_friends_in_tier(tier, data.ordered_ids)
    return workspace.store.get_friends_in_tier(tier)


# --- Session ---


@router.post("/tend")
async def mark_tended(workspace: CircleWorkspace = Depends(get_workspace)):
    return {"last_tended_at": workspace.store.mark_tended()}


@router.delete("", status_code=204)
async def clear_all_data(user_id: str, service: CircleService = Depends(get_circle_service)):
    """Erase the roster, content and history, and restore default settings."""
    await service.clear_all_data(user_id)
    return Response(status_code=204)
