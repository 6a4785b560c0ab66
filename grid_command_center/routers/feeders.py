from __future__ import annotations

from fastapi import APIRouter, Depends

from grid_command_center.dependencies import get_grid_state
from grid_command_center.grid.state import GridState
from grid_command_center.routers.utils import ensure_feeder, feeder_to_api
from grid_command_center.schemas.api_models import ApiResponse, FeederOut

router = APIRouter()


@router.get("", response_model=ApiResponse[list[FeederOut]])
async def list_feeders(grid: GridState = Depends(get_grid_state)):
    return ApiResponse(data=[feeder_to_api(snapshot) for snapshot in grid.snapshot()])


@router.get("/{feeder_id}", response_model=ApiResponse[FeederOut])
async def get_feeder(feeder_id: str, grid: GridState = Depends(get_grid_state)):
    return ApiResponse(data=feeder_to_api(ensure_feeder(grid, feeder_id)))
