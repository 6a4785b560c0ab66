from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from grid_command_center import crud
from grid_command_center.beckn.gateway import ProtocolGateway, create_context
from grid_command_center.dependencies import get_gateway, get_grid_state, get_session
from grid_command_center.exceptions import FeederNotFoundError, InvariantViolationError, ProtocolStageFailure
from grid_command_center.grid.state import GridState
from grid_command_center.routers.utils import OPERATOR, active_der_to_api, activation_to_api, failure
from grid_command_center.schemas.api_models import (
    ActivationOut,
    ActiveDEROut,
    ApiResponse,
    DERActivateRequest,
    DERSearchRequest,
    DERSelectRequest,
    OrderStatusOut,
    SelectionOut,
)
from grid_command_center.schemas.beckn import DERResource, StageFailed
from grid_command_center.services import dispatch

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/search", response_model=ApiResponse[list[DERResource]])
async def search_ders(payload: DERSearchRequest, gateway: ProtocolGateway = Depends(get_gateway)):
    try:
        ders = await dispatch.search_ders(gateway, payload.fulfillmentType, payload.quantity)
    except ProtocolStageFailure as e:
        return failure(f"Failed to search DERs: {e.reason}")
    return ApiResponse(
        data=ders,
        message=f"Found {len(ders)} available DER resources via BECKN Protocol",
    )


@router.get("/active", response_model=ApiResponse[list[ActiveDEROut]])
async def list_active_ders(grid: GridState = Depends(get_grid_state)):
    return ApiResponse(data=[active_der_to_api(record) for record in grid.active_ders()])


@router.post("/{der_id}/select", response_model=ApiResponse[SelectionOut])
async def select_der(
    der_id: str,
    payload: DERSelectRequest,
    gateway: ProtocolGateway = Depends(get_gateway),
):
    result = await gateway.select(create_context("select"), der_id, payload.quantity)
    if isinstance(result, StageFailed):
        return failure(f"Failed to select DER: {result.error}")
    return ApiResponse(
        data=SelectionOut(
            selectionId=result.selection_id,
            derId=result.provider_id,
            quote=result.quote.model_dump(),
        ),
        message=f"DER {der_id} selected successfully",
    )


@router.post("/{der_id}/activate", response_model=ApiResponse[ActivationOut])
async def activate_der(
    der_id: str,
    payload: DERActivateRequest,
    grid: GridState = Depends(get_grid_state),
    gateway: ProtocolGateway = Depends(get_gateway),
    session: AsyncSession = Depends(get_session),
):
    try:
        activation = await dispatch.activate_der(
            grid,
            gateway,
            der_id,
            payload.quantity,
            feeder_id=payload.feederId,
            start_time=payload.startTime,
            end_time=payload.endTime,
            fulfillment_type=payload.fulfillmentType,
        )
    except FeederNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Feeder not found")
    except InvariantViolationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    result = activation.journey
    if not result.success:
        await crud.add_audit_log(
            session,
            action="DER Activation Failed",
            user=OPERATOR,
            target=der_id,
            status="error",
            description=f"Beckn journey failed at {result.failed_action}: {result.error}",
        )
        return failure(f"Failed to activate DER: {result.error}")

    await crud.add_audit_log(
        session,
        action="DER Activated",
        user=OPERATOR,
        target=der_id,
        status="success",
        description=(
            f"Order {result.order_id}, {payload.quantity.value:.1f} {payload.quantity.unit}"
            + (f" on feeder {payload.feederId}" if payload.feederId else "")
        ),
    )
    return ApiResponse(
        data=activation_to_api(result, payload.quantity.value, payload.feederId),
        message=f"DER {der_id} activated successfully via BECKN Protocol",
    )


@router.post("/{order_id}/deactivate", response_model=ApiResponse[None])
async def deactivate_der(
    order_id: str,
    grid: GridState = Depends(get_grid_state),
    session: AsyncSession = Depends(get_session),
):
    record = grid.deactivate(order_id)
    if record is not None:
        await crud.add_audit_log(
            session,
            action="DER Deactivated",
            user=OPERATOR,
            target=record.der_id,
            status="success",
            description=f"Order {order_id} stood down on feeder {record.feeder_id}",
        )
    return ApiResponse(message=f"Order {order_id} deactivated")


@router.get("/status/{order_id}", response_model=ApiResponse[OrderStatusOut])
async def order_status(
    order_id: str,
    grid: GridState = Depends(get_grid_state),
    gateway: ProtocolGateway = Depends(get_gateway),
):
    result = await gateway.status(create_context("status"), order_id)
    if isinstance(result, StageFailed):
        return failure(f"Failed to get DER status: {result.error}")
    with grid.lock:
        record = grid.registry.get(order_id)
    return ApiResponse(
        data=OrderStatusOut(
            orderId=order_id,
            status=result.state.value,
            currentOutput=record.output if record else None,
        )
    )


@router.post("/{order_id}/cancel", response_model=ApiResponse[OrderStatusOut])
async def cancel_order(
    order_id: str,
    grid: GridState = Depends(get_grid_state),
    gateway: ProtocolGateway = Depends(get_gateway),
    session: AsyncSession = Depends(get_session),
):
    try:
        result = await dispatch.cancel_order(grid, gateway, order_id)
    except ProtocolStageFailure as e:
        return failure(f"Failed to cancel DER activation: {e.reason}")
    await crud.add_audit_log(
        session,
        action="Order Cancelled",
        user=OPERATOR,
        target=order_id,
        status="info",
        description=result.reason,
    )
    return ApiResponse(
        data=OrderStatusOut(orderId=order_id, status=result.state.value),
        message=f"Order {order_id} cancelled successfully",
    )
