from __future__ import annotations

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse

from grid_command_center.beckn.journey import JourneyResult
from grid_command_center.exceptions import FeederNotFoundError
from grid_command_center.grid.registry import ActiveDER
from grid_command_center.grid.state import FeederSnapshot, GridState
from grid_command_center.models.audit_log import AuditLog
from grid_command_center.schemas.api_models import (
    ActivationOut,
    ActiveDEROut,
    ApiResponse,
    AuditLogOut,
    FeederOut,
)

OPERATOR = "operator"


def ensure_feeder(grid: GridState, feeder_id: str) -> FeederSnapshot:
    try:
        return grid.feeder_snapshot(feeder_id)
    except FeederNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Feeder not found")


def failure(error: str, status_code: int = status.HTTP_502_BAD_GATEWAY) -> JSONResponse:
    body = ApiResponse[None](success=False, error=error)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def active_der_to_api(record: ActiveDER) -> ActiveDEROut:
    return ActiveDEROut(
        orderId=record.order_id,
        derId=record.der_id,
        feederId=record.feeder_id,
        output=record.output,
        activatedAt=record.activated_at,
    )


def feeder_to_api(snapshot: FeederSnapshot) -> FeederOut:
    return FeederOut(
        id=snapshot.feeder_id,
        name=snapshot.name,
        substationName=snapshot.substation_name,
        # Unmitigated load, i.e. the random-walk target
        baseLoad=round(snapshot.target_load, 2),
        currentLoad=round(snapshot.current_load, 2),
        capacity=snapshot.capacity,
        loadPercent=round(snapshot.load_percent, 1),
        status=snapshot.status,
        criticality=snapshot.criticality,
        connectedDERs=snapshot.connected_ders,
        activeDERContribution=round(snapshot.active_der_contribution, 2),
        activeDERs=[active_der_to_api(record) for record in snapshot.active_ders],
        responseTime=snapshot.response_time_ms,
        isResponding=snapshot.is_responding,
        pendingAutoActivation=snapshot.pending_auto_activation,
    )


def activation_to_api(result: JourneyResult, output: float, feeder_id: str | None) -> ActivationOut:
    return ActivationOut(
        orderId=result.order_id,
        derId=result.provider.id,
        status=result.order_state.value,
        output=output,
        feederId=feeder_id,
        transactionId=result.transaction_id,
        stages=[stage.value for stage in result.stages],
    )


def audit_log_to_api(log: AuditLog) -> AuditLogOut:
    return AuditLogOut(
        id=log.log_id,
        timestamp=log.timestamp,
        action=log.action,
        user=log.user,
        target=log.target,
        status=log.status,
        description=log.description,
    )
