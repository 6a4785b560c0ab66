"""
Agent Decision Planner

Turns a described grid problem into an ordered list of Beckn actions and,
on request, executes them through a gateway.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Literal

from grid_command_center.beckn.gateway import ProtocolGateway
from grid_command_center.beckn.journey import Journey
from grid_command_center.core.config import Settings, settings
from grid_command_center.exceptions import GridCommandError, ProtocolStageFailure
from grid_command_center.grid.state import GridState
from grid_command_center.schemas.beckn import Quantity

logger = logging.getLogger(__name__)

Urgency = Literal["low", "medium", "high", "critical"]
Action = Literal["discover", "select", "init", "confirm", "status", "cancel"]
ProblemType = Literal["demand-spike", "feeder-overload", "forecast-congestion", "general-optimization"]

FULL_JOURNEY: tuple[Action, ...] = ("discover", "select", "init", "confirm", "status")
PREPARE_ONLY: tuple[Action, ...] = ("discover", "select", "status")
DISCOVER_ONLY: tuple[Action, ...] = ("discover",)

_PLANS: dict[str, tuple[Action, ...]] = {
    "critical": FULL_JOURNEY,
    "high": FULL_JOURNEY,
    "medium": PREPARE_ONLY,
    "low": DISCOVER_ONLY,
}

DEFAULT_CAPACITY_KW = 100.0
DISPATCH_SHARE = 0.5


@dataclass
class GridProblem:
    urgency: Urgency
    description: str
    type: ProblemType = "general-optimization"
    feeder_id: str | None = None
    substation_id: str | None = None
    current_load: float | None = None
    capacity: float | None = None


@dataclass(frozen=True)
class AgentDecision:
    step: int
    action: Action
    reasoning: str
    expected_outcome: str


@dataclass
class OrchestrationResult:
    success: bool
    problem: GridProblem
    decisions: list[AgentDecision]
    execution_time_ms: int
    message: str
    order_id: str | None = None
    details: str | None = None
    stages: list[str] = field(default_factory=list)


def plan(urgency: str) -> tuple[Action, ...]:
    """Return the fixed action sequence for an urgency tier."""
    try:
        return _PLANS[urgency]
    except KeyError:
        raise ValueError(f"Unknown urgency: {urgency}") from None


def _reasoning(problem: GridProblem, action: Action) -> tuple[str, str]:
    target = problem.feeder_id or "Grid"
    if problem.urgency in ("critical", "high"):
        return {
            "discover": (
                f"{problem.urgency.upper()}: {target} at critical capacity. "
                "Discovering active DER subscribers immediately.",
                "BAP Sandbox returns list of active DER providers",
            ),
            "select": (
                "Selecting the most suitable and available DER resource",
                "Provider selected with quote and terms",
            ),
            "init": (
                "Preparing order with billing and fulfillment details for activation",
                "Order prepared and ready for confirmation",
            ),
            "confirm": (
                "Confirming DER activation to immediately reduce load",
                "DER activated, load reduction begins",
            ),
            "status": (
                "Verifying DER is active and load reduction is in effect",
                "Confirmation of active status",
            ),
        }[action]
    if problem.urgency == "medium":
        return {
            "discover": (
                "Medium urgency - proactively discovering available DER options",
                "Get list of available providers",
            ),
            "select": (
                "Pre-selecting optimal resources for quick activation if needed",
                "DER resource prepared and quoted",
            ),
            "status": ("Monitoring and checking readiness", "Current availability status"),
        }[action]
    return (
        "Low urgency - monitoring available DER capacity for planning",
        "List of available resources for future use",
    )


def analyze_problem(problem: GridProblem) -> list[AgentDecision]:
    decisions = []
    for step, action in enumerate(plan(problem.urgency), start=1):
        reasoning, outcome = _reasoning(problem, action)
        decisions.append(
            AgentDecision(step=step, action=action, reasoning=reasoning, expected_outcome=outcome)
        )
    return decisions


async def orchestrate_grid_response(
    problem: GridProblem,
    gateway: ProtocolGateway,
    grid: GridState | None = None,
    config: Settings | None = None,
    fulfillment_type: str = "energy-dispatch",
) -> OrchestrationResult:
    """Plan and execute a response to ``problem``.

    Critical and high urgency run the full journey and, when the problem names
    a feeder of ``grid``, attribute the confirmed order to it. Medium and low
    urgency only discover what is available.
    """
    config = config or settings
    started = time.monotonic()
    decisions = analyze_problem(problem)

    logger.info(
        f"Agent analyzing problem ({problem.urgency}, feeder {problem.feeder_id or 'N/A'}): "
        f"{problem.description}"
    )
    logger.info(f"Agent decision plan: {', '.join(d.action for d in decisions)}")

    journey = Journey(gateway, config=config)
    order_id = None
    details = None
    try:
        if plan(problem.urgency) == FULL_JOURNEY:
            amount = round((problem.capacity or DEFAULT_CAPACITY_KW) * DISPATCH_SHARE)
            quantity = Quantity(amount=str(amount), unit="kW")
            result = await journey.run(fulfillment_type, quantity)
            if not result.success:
                raise ProtocolStageFailure(result.failed_action or "journey", result.error or "journey failed")
            order_id = result.order_id
            details = f"DER activated: {order_id}"
            if grid is not None and problem.feeder_id and grid.has_feeder(problem.feeder_id):
                grid.activate(result.provider.id, problem.feeder_id, quantity.value, order_id)
                details += f" (attributed to {problem.feeder_id})"
        else:
            await journey.search(fulfillment_type)
            details = "DER capacity assessed and ready"
    except GridCommandError as e:
        elapsed = int((time.monotonic() - started) * 1000)
        logger.error(f"Orchestration failed after {elapsed}ms: {e}")
        return OrchestrationResult(
            success=False,
            problem=problem,
            decisions=decisions,
            execution_time_ms=elapsed,
            message=f"Orchestration failed: {e}",
            stages=[stage.value for stage in journey.history],
        )

    elapsed = int((time.monotonic() - started) * 1000)
    logger.info(f"Grid orchestration successful ({elapsed}ms), order {order_id or 'n/a'}")
    return OrchestrationResult(
        success=True,
        problem=problem,
        decisions=decisions,
        execution_time_ms=elapsed,
        message=f"Grid orchestration successful ({elapsed}ms)",
        order_id=order_id,
        details=details,
        stages=[stage.value for stage in journey.history],
    )
