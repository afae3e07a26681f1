"""Reserved spot endpoints - hold tier capacity for people not yet named."""

from fastapi import APIRouter, Depends, Response

from circles.api.deps import get_workspace, result_response
from circles.core.workspace import CircleWorkspace
from circles.schemas.friend import ReservedGroup, ReservedGroupIn, ReservedGroupResult, Tier

router = APIRouter()


@router.get("/tiers/{tier}/reserved", response_model=list[ReservedGroup])
async def list_reserved_groups(tier: Tier, workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.store.get_reserved_groups(tier)


@router.post("/tiers/{tier}/reserved", response_model=ReservedGroupResult, status_code=201)
async def add_reserved_group(
    tier: Tier, data: ReservedGroupIn, workspace: CircleWorkspace = Depends(get_workspace)
):
    """Reserve spots. The count is clamped to the room left in the tier."""
    result = workspace.store.add_reserved_group(tier, data.count, data.note)
    return result_response(result, success_status=201)


@router.put("/tiers/{tier}/reserved/{group_id}", response_model=ReservedGroup)
async def update_reserved_group(
    tier: Tier,
    group_id: str,
    data: ReservedGroupIn,
    workspace: CircleWorkspace = Depends(get_workspace),
):
    return workspace.store.update_reserved_group(tier, group_id, data.count, data.note)


@router.delete("/tiers/{tier}/reserved/{group_id}", status_code=204)
async def remove_reserved_group(
    tier: Tier, group_id: str, workspace: CircleWorkspace = Depends(get_workspace)
):
    workspace.store.remove_reserved_group(tier, group_id)
    return Response(status_code=204)
