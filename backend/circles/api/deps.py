"""Shared API dependencies and result-to-response helpers."""

from fastapi import Depends
from fastapi.responses import JSONResponse

from circles.core.workspace import CircleWorkspace
from circles.db.redis import get_redis_client
from circles.schemas.friend import OperationResult
from circles.services.circle_service import CircleService
from circles.services.persistence_service import RosterRepository
from circles.services.roster_cache import RosterCache

_circle_service: CircleService | None = None


def get_circle_service() -> CircleService:
    """Process-wide CircleService, created on first use."""
    global _circle_service
    if _circle_service is None:
        _circle_service = CircleService(RosterRepository(), RosterCache(get_redis_client()))
    return _circle_service


async def close_circle_service() -> None:
    global _circle_service
    if _circle_service is not None:
        await _circle_service.close()
        _circle_service = None


async def get_workspace(
    user_id: str, service: CircleService = Depends(get_circle_service)
) -> CircleWorkspace:
    return await service.get_workspace(user_id)


def result_response(result: OperationResult, success_status: int = 200, failure_status: int = 409):
    """Return the result body with a status that reflects its outcome."""
    status_code = success_status if result.success else failure_status
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))
