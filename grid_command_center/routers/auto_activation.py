from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from grid_command_center import crud
from grid_command_center.beckn.gateway import ProtocolGateway
from grid_command_center.dependencies import get_gateway, get_grid_state, get_session
from grid_command_center.exceptions import ProtocolStageFailure
from grid_command_center.grid.state import GridState
from grid_command_center.routers.utils import OPERATOR, activation_to_api, ensure_feeder, failure
from grid_command_center.schemas.api_models import (
    ApiResponse,
    AutoActivationConfirmOut,
    AutoActivationRequestOut,
)
from grid_command_center.services import dispatch

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/auto-activation-requests", response_model=ApiResponse[list[AutoActivationRequestOut]])
async def list_auto_activation_requests(grid: GridState = Depends(get_grid_state)):
    requests = []
    with grid.lock:
        for feeder_id in grid.pending():
            snapshot = grid.feeder_snapshot(feeder_id)
            requests.append(
                AutoActivationRequestOut(
                    feederId=snapshot.feeder_id,
                    feederName=snapshot.name,
                    currentLoad=round(snapshot.current_load, 2),
                    capacity=snapshot.capacity,
                    loadPercent=round(snapshot.load_percent, 1),
                )
            )
    return ApiResponse(data=requests)


@router.post("/auto-activation/{feeder_id}/confirm", response_model=ApiResponse[AutoActivationConfirmOut])
async def confirm_auto_activation(
    feeder_id: str,
    grid: GridState = Depends(get_grid_state),
    gateway: ProtocolGateway = Depends(get_gateway),
    session: AsyncSession = Depends(get_session),
):
    ensure_feeder(grid, feeder_id)
    try:
        outcome = await dispatch.confirm_auto_activation(grid, gateway, feeder_id)
    except ProtocolStageFailure as e:
        return failure(f"Failed to search DERs: {e.reason}")

    activations = [
        activation_to_api(a.journey, a.record.output, feeder_id) for a in outcome.activations
    ]
    await crud.add_audit_log(
        session,
        action="Auto-Activation Confirmed",
        user=OPERATOR,
        target=feeder_id,
        status="success" if outcome.success else "error",
        description=(
            f"{len(activations)} DERs activated "
            f"({sum(a.output for a in activations):.1f} kW), {len(outcome.failures)} failed"
        ),
    )
    if not outcome.success:
        return failure(f"No DERs could be activated for feeder {feeder_id}")
    return ApiResponse(
        data=AutoActivationConfirmOut(
            feederId=feeder_id, activations=activations, failed=len(outcome.failures)
        ),
        message=f"Activated {len(activations)} DERs for feeder {feeder_id}",
    )


@router.post("/auto-activation/{feeder_id}/dismiss", response_model=ApiResponse[None])
async def dismiss_auto_activation(
    feeder_id: str,
    grid: GridState = Depends(get_grid_state),
    session: AsyncSession = Depends(get_session),
):
    ensure_feeder(grid, feeder_id)
    if grid.clear_pending(feeder_id):
        await crud.add_audit_log(
            session,
            action="Auto-Activation Dismissed",
            user=OPERATOR,
            target=feeder_id,
            status="info",
            description=f"Operator dismissed auto-activation for feeder {feeder_id}",
        )
    return ApiResponse(message=f"Auto-activation request for {feeder_id} dismissed")
