"""Portability endpoints - export, import, contact intake and remote sync."""

from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import Response

from circles.api.deps import get_circle_service, get_workspace, result_response
from circles.core.portability import export_filename, serialize_export
from circles.core.sync import SyncReport
from circles.core.workspace import CircleWorkspace
from circles.schemas.contact import IntakeRequest, IntakeResult
from circles.schemas.friend import Friend
from circles.schemas.portability import ImportMode, ImportResult
from circles.services.circle_service import CircleService

router = APIRouter()


@router.get("/export")
async def export_social_graph(workspace: CircleWorkspace = Depends(get_workspace)):
    """Download the full social graph as versioned JSON."""
    graph = workspace.export_social_graph()
    return Response(
        content=serialize_export(graph),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(graph.exported_at)}"'},
    )


@router.post("/import", response_model=ImportResult)
async def import_social_graph(
    user_id: str,
    data: dict[str, Any] = Body(...),
    mode: ImportMode | None = None,
    service: CircleService = Depends(get_circle_service),
):
    """Validate and apply an export. 422 with the result body when rejected."""
    result = await service.import_social_graph(user_id, data, mode)
    return result_response(result, failure_status=422)


@router.post("/contacts/intake", response_model=IntakeResult)
async def intake_contacts(data: IntakeRequest, workspace: CircleWorkspace = Depends(get_workspace)):
    """Bring bulk-imported contacts into the acquainted tier."""
    return workspace.lifecycle.intake_contacts(data.contacts, data.strategy)


@router.post("/sync", response_model=SyncReport)
async def sync_roster(
    user_id: str,
    remote_friends: list[Friend],
    service: CircleService = Depends(get_circle_service),
):
    """Merge a remote copy of the roster; the newest record wins."""
    return await service.sync_roster(user_id, remote_friends)
