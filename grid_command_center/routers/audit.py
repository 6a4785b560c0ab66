from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from grid_command_center import crud
from grid_command_center.dependencies import get_session
from grid_command_center.routers.utils import audit_log_to_api
from grid_command_center.schemas.api_models import ApiResponse, AuditLogOut

router = APIRouter()


@router.get("", response_model=ApiResponse[list[AuditLogOut]])
async def list_audit_logs(
    session: AsyncSession = Depends(get_session),
    target: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=1000),
):
    logs = await crud.list_audit_logs(session, target=target, limit=limit)
    return ApiResponse(data=[audit_log_to_api(log) for log in logs])
