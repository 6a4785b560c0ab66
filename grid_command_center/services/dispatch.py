"""DER dispatch helpers shared by the HTTP routes and the auto-activation flow."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from grid_command_center.beckn.gateway import ProtocolGateway, create_context
from grid_command_center.beckn.journey import JourneyResult, run_journey
from grid_command_center.core.config import Settings, settings
from grid_command_center.exceptions import ProtocolStageFailure
from grid_command_center.grid.registry import ActiveDER
from grid_command_center.grid.state import GridState
from grid_command_center.schemas.beckn import DERResource, Quantity, SearchFound

logger = logging.getLogger(__name__)


@dataclass
class Activation:
    journey: JourneyResult
    record: ActiveDER | None = None


@dataclass
class AutoActivationOutcome:
    feeder_id: str
    activations: list[Activation] = field(default_factory=list)
    failures: list[JourneyResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.activations)


async def search_ders(
    gateway: ProtocolGateway,
    fulfillment_type: str,
    quantity: Quantity | None = None,
    config: Settings | None = None,
) -> list[DERResource]:
    """One-off discovery outside a journey. Empty list when nothing matches."""
    result = await gateway.search(create_context("search", config or settings), fulfillment_type, quantity)
    if isinstance(result, SearchFound):
        return list(result.providers)
    if result.outcome == "failed":
        raise ProtocolStageFailure("search", result.error)
    return []


async def activate_der(
    grid: GridState,
    gateway: ProtocolGateway,
    der_id: str,
    quantity: Quantity,
    feeder_id: str | None = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    fulfillment_type: str = "energy-dispatch",
    config: Settings | None = None,
) -> Activation:
    """Run a full journey for ``der_id`` and attribute the order to ``feeder_id``.

    The feeder is checked before any Beckn call is made. A failed journey
    leaves the grid untouched.
    """
    if feeder_id is not None:
        grid.feeder_snapshot(feeder_id)  # FeederNotFoundError

    result = await run_journey(
        gateway,
        fulfillment_type,
        quantity,
        provider_id=der_id,
        start_time=start_time,
        end_time=end_time,
        config=config,
    )
    if not result.success:
        return Activation(journey=result)

    record = None
    if feeder_id is not None:
        record = grid.activate(der_id, feeder_id, quantity.value, result.order_id)
    return Activation(journey=result, record=record)


async def confirm_auto_activation(
    grid: GridState,
    gateway: ProtocolGateway,
    feeder_id: str,
    config: Settings | None = None,
) -> AutoActivationOutcome:
    """Operator confirmation of a pending auto-activation.

    Discovers available DERs and activates the first
    ``auto_activation_der_count`` of them at full capacity on ``feeder_id``.
    """
    config = config or settings
    grid.feeder_snapshot(feeder_id)
    outcome = AutoActivationOutcome(feeder_id=feeder_id)

    candidates = await search_ders(gateway, "energy-dispatch", config=config)
    for der in candidates[: config.auto_activation_der_count]:
        quantity = Quantity(amount=str(der.capacity), unit="kW")
        activation = await activate_der(
            grid, gateway, der.id, quantity, feeder_id=feeder_id, config=config
        )
        if activation.record is None:
            logger.warning(
                f"Auto-activation of {der.id} for feeder {feeder_id} failed: {activation.journey.error}"
            )
            outcome.failures.append(activation.journey)
        else:
            outcome.activations.append(activation)

    grid.clear_pending(feeder_id)
    logger.info(
        f"Auto-activation for feeder {feeder_id}: "
        f"{len(outcome.activations)} activated, {len(outcome.failures)} failed"
    )
    return outcome


async def cancel_order(
    grid: GridState,
    gateway: ProtocolGateway,
    order_id: str,
    config: Settings | None = None,
):
    """Cancel an order at the gateway and stand down its DER locally."""
    result = await gateway.cancel(create_context("cancel", config or settings), order_id)
    if result.outcome == "failed":
        raise ProtocolStageFailure("cancel", result.error)
    grid.deactivate(order_id)
    return result
