from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from grid_command_center import crud
from grid_command_center.beckn.gateway import ProtocolGateway
from grid_command_center.dependencies import get_gateway, get_grid_state, get_session
from grid_command_center.grid.state import GridState
from grid_command_center.schemas.api_models import (
    AgentDecisionOut,
    ApiResponse,
    GridProblemIn,
    OrchestrationOut,
)
from grid_command_center.services.planner import (
    AgentDecision,
    GridProblem,
    analyze_problem,
    orchestrate_grid_response,
)

router = APIRouter()

AGENT_USER = "grid-agent"


def _problem_from_api(payload: GridProblemIn) -> GridProblem:
    return GridProblem(
        urgency=payload.urgency,
        description=payload.description,
        type=payload.type,
        feeder_id=payload.feederId,
        substation_id=payload.substationId,
        current_load=payload.currentLoad,
        capacity=payload.capacity,
    )


def _decision_to_api(decision: AgentDecision) -> AgentDecisionOut:
    return AgentDecisionOut(
        step=decision.step,
        action=decision.action,
        reasoning=decision.reasoning,
        expectedOutcome=decision.expected_outcome,
    )


@router.post("/plan", response_model=ApiResponse[list[AgentDecisionOut]])
async def plan_response(payload: GridProblemIn):
    decisions = analyze_problem(_problem_from_api(payload))
    return ApiResponse(data=[_decision_to_api(decision) for decision in decisions])


@router.post("/orchestrate", response_model=ApiResponse[OrchestrationOut])
async def orchestrate(
    payload: GridProblemIn,
    grid: GridState = Depends(get_grid_state),
    gateway: ProtocolGateway = Depends(get_gateway),
    session: AsyncSession = Depends(get_session),
):
    result = await orchestrate_grid_response(_problem_from_api(payload), gateway, grid)
    await crud.add_audit_log(
        session,
        action="Agent Orchestration",
        user=AGENT_USER,
        target=payload.feederId or "grid",
        status="success" if result.success else "error",
        description=f"{payload.urgency} urgency: {result.details or result.message}",
    )
    return ApiResponse(
        success=result.success,
        data=OrchestrationOut(
            success=result.success,
            decisions=[_decision_to_api(decision) for decision in result.decisions],
            orderId=result.order_id,
            executionTime=result.execution_time_ms,
            message=result.message,
            details=result.details,
            stages=result.stages,
        ),
        message=result.message,
    )
