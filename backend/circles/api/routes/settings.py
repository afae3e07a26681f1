"""Settings endpoints - per-tier privacy and notification matrices."""

from fastapi import APIRouter, Depends

from circles.api.deps import get_workspace
from circles.core.workspace import CircleWorkspace
from circles.schemas.friend import Tier
from circles.schemas.settings import SettingsBundle, TierNotification, TierPrivacy

router = APIRouter()


@router.get("/settings", response_model=SettingsBundle, response_model_by_alias=False)
async def get_settings(workspace: CircleWorkspace = Depends(get_workspace)):
    return workspace.settings


@router.put("/settings/privacy/{tier}", response_model=TierPrivacy, response_model_by_alias=False)
async def update_privacy(
    tier: Tier, data: TierPrivacy, workspace: CircleWorkspace = Depends(get_workspace)
):
    """Replace what viewers in ``tier`` may see."""
    return workspace.update_privacy_settings(tier, data).privacy.for_tier(tier)


@router.put(
    "/settings/notifications/{tier}", response_model=TierNotification, response_model_by_alias=False
)
async def update_notifications(
    tier: Tier, data: TierNotification, workspace: CircleWorkspace = Depends(get_workspace)
):
    return workspace.update_notification_settings(tier, data).notifications.for_tier(tier)
