"""
Beckn Fulfillment Journey

Drives one DER activation attempt through the ordered Beckn stages:

    SEARCH -> SELECT -> INIT -> CONFIRM -> STATUS

``CANCELLED`` is reachable from CONFIRM or STATUS, and any stage failure
moves the journey to ``FAILED``. Stages cannot be skipped or repeated,
except STATUS which may be polled again.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, TypeVar
from uuid import uuid4

from grid_command_center.beckn.gateway import ProtocolGateway, create_context
from grid_command_center.core.config import Settings, settings
from grid_command_center.exceptions import InvariantViolationError, ProtocolStageFailure
from grid_command_center.schemas.beckn import (
    BecknAction,
    BecknContext,
    Cancelled,
    Confirmed,
    DERResource,
    Initialized,
    OrderState,
    Quantity,
    SearchNotFound,
    Selected,
    StageFailed,
    StatusReport,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WINDOW = timedelta(hours=1)


class JourneyStage(str, Enum):
    CREATED = "created"
    SEARCH = "search"
    SELECT = "select"
    INIT = "init"
    CONFIRM = "confirm"
    STATUS = "status"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STAGES = frozenset({JourneyStage.CANCELLED, JourneyStage.FAILED})

_TRANSITIONS: dict[JourneyStage, frozenset[JourneyStage]] = {
    JourneyStage.CREATED: frozenset({JourneyStage.SEARCH}),
    JourneyStage.SEARCH: frozenset({JourneyStage.SELECT}),
    JourneyStage.SELECT: frozenset({JourneyStage.INIT}),
    JourneyStage.INIT: frozenset({JourneyStage.CONFIRM}),
    JourneyStage.CONFIRM: frozenset({JourneyStage.STATUS, JourneyStage.CANCELLED}),
    JourneyStage.STATUS: frozenset({JourneyStage.STATUS, JourneyStage.CANCELLED}),
    JourneyStage.CANCELLED: frozenset(),
    JourneyStage.FAILED: frozenset(),
}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass
class JourneyResult:
    success: bool
    transaction_id: str
    stages: list[JourneyStage]
    order_id: str | None = None
    order_state: OrderState | None = None
    provider: DERResource | None = None
    quantity: Quantity | None = None
    quote: dict[str, Any] | None = None
    error: str | None = None
    failed_action: str | None = None


class Journey:
    """A single Beckn transaction. Instances are not reusable."""

    def __init__(
        self,
        gateway: ProtocolGateway,
        config: Settings | None = None,
        compensate: bool | None = None,
    ) -> None:
        self._gateway = gateway
        self._config = config or settings
        self._compensate = (
            self._config.journey_compensate_on_failure if compensate is None else compensate
        )
        self._timeout = self._config.beckn_timeout_s

        self.transaction_id = uuid4().hex
        self.stage = JourneyStage.CREATED
        self.history: list[JourneyStage] = []
        self.providers: list[DERResource] = []
        self.provider: DERResource | None = None
        self.quantity: Quantity | None = None
        self.selection: Selected | None = None
        self.order_id: str | None = None
        self.order_state: OrderState | None = None
        self.error: str | None = None
        self.failed_action: str | None = None

    # ------------------------------------------------------------------
    # State machine plumbing

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def _require(self, target: JourneyStage) -> None:
        if target not in _TRANSITIONS[self.stage]:
            raise InvariantViolationError(
                f"Journey {self.transaction_id}: cannot move from {self.stage.value} to {target.value}"
            )

    def _advance(self, target: JourneyStage) -> None:
        self._require(target)
        self.stage = target
        self.history.append(target)

    def _context(self, action: BecknAction) -> BecknContext:
        return create_context(action, self._config, transaction_id=self.transaction_id)

    async def _call(self, action: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError:
            await self._abort(action, f"{action} timed out after {self._timeout}s")
        except Exception as e:
            logger.error(f"Journey {self.transaction_id}: {action} raised {e!r}", exc_info=True)
            await self._abort(action, str(e) or type(e).__name__)

    async def _abort(self, action: str, reason: str) -> None:
        """Move to FAILED, optionally cancel an allocated order, then raise."""
        logger.error(f"Journey {self.transaction_id} failed at {action}: {reason}")
        self.stage = JourneyStage.FAILED
        self.history.append(JourneyStage.FAILED)
        self.error = reason
        self.failed_action = action
        if self.order_id is not None:
            self.order_state = OrderState.FAILED
            if self._compensate:
                await self._compensate_order()
        raise ProtocolStageFailure(action, reason)

    async def _compensate_order(self) -> None:
        logger.info(f"Journey {self.transaction_id}: cancelling order {self.order_id} after failure")
        try:
            result = await asyncio.wait_for(
                self._gateway.cancel(self._context("cancel"), self.order_id),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Compensating cancel for {self.order_id} timed out")
            return
        except Exception as e:
            logger.error(f"Compensating cancel for {self.order_id} raised {e!r}", exc_info=True)
            return
        if isinstance(result, Cancelled):
            self.order_state = OrderState.CANCELLED
        else:
            logger.error(f"Compensating cancel for {self.order_id} failed: {result.error}")

    # ------------------------------------------------------------------
    # Stages

    async def search(self, fulfillment_type: str, quantity: Quantity | None = None) -> list[DERResource]:
        self._require(JourneyStage.SEARCH)
        result = await self._call(
            "search", self._gateway.search(self._context("search"), fulfillment_type, quantity)
        )
        if isinstance(result, StageFailed):
            await self._abort("search", result.error)
        if isinstance(result, SearchNotFound) or not result.providers:
            await self._abort("search", "No providers found")
        self._advance(JourneyStage.SEARCH)
        self.providers = list(result.providers)
        logger.info(f"Journey {self.transaction_id}: found {len(self.providers)} providers")
        return self.providers

    async def select(self, quantity: Quantity, provider_id: str | None = None) -> Selected:
        """Select ``provider_id`` from the search results, or the first one."""
        self._require(JourneyStage.SELECT)
        if provider_id is None:
            provider = self.providers[0]
        else:
            provider = next((p for p in self.providers if p.id == provider_id), None)
            if provider is None:
                await self._abort("select", f"Provider {provider_id} not offered by search")
        result = await self._call(
            "select", self._gateway.select(self._context("select"), provider.id, quantity)
        )
        if isinstance(result, StageFailed):
            await self._abort("select", result.error)
        self._advance(JourneyStage.SELECT)
        self.provider = provider
        self.quantity = quantity
        self.selection = result
        logger.info(
            f"Journey {self.transaction_id}: selected {provider.name} "
            f"(quote {result.quote.price.value} {result.quote.price.currency})"
        )
        return result

    async def init(self, start_time: datetime | None = None, end_time: datetime | None = None) -> Initialized:
        self._require(JourneyStage.INIT)
        start = _as_utc(start_time) if start_time else datetime.now(UTC)
        end = _as_utc(end_time) if end_time else start + DEFAULT_WINDOW
        if end <= start:
            await self._abort("init", "Fulfillment end time must be after start time")
        result = await self._call(
            "init", self._gateway.init(self._context("init"), self.provider.id, start, end)
        )
        if isinstance(result, StageFailed):
            await self._abort("init", result.error)
        self._advance(JourneyStage.INIT)
        self.order_id = result.order_id
        self.order_state = OrderState.DRAFT
        logger.info(f"Journey {self.transaction_id}: order initialized {self.order_id}")
        return result

    async def confirm(self) -> Confirmed:
        self._require(JourneyStage.CONFIRM)
        result = await self._call(
            "confirm",
            self._gateway.confirm(self._context("confirm"), self.order_id, self.provider.id),
        )
        if isinstance(result, StageFailed):
            await self._abort("confirm", result.error)
        self._advance(JourneyStage.CONFIRM)
        self.order_state = OrderState.ACTIVE
        logger.info(f"Journey {self.transaction_id}: order {self.order_id} confirmed and active")
        return result

    async def status(self) -> StatusReport:
        self._require(JourneyStage.STATUS)
        result = await self._call(
            "status", self._gateway.status(self._context("status"), self.order_id)
        )
        if isinstance(result, StageFailed):
            await self._abort("status", result.error)
        self._advance(JourneyStage.STATUS)
        self.order_state = result.state
        logger.info(f"Journey {self.transaction_id}: order {self.order_id} is {result.state.value}")
        return result

    async def cancel(self) -> Cancelled:
        self._require(JourneyStage.CANCELLED)
        result = await self._call(
            "cancel", self._gateway.cancel(self._context("cancel"), self.order_id)
        )
        if isinstance(result, StageFailed):
            await self._abort("cancel", result.error)
        self._advance(JourneyStage.CANCELLED)
        self.order_state = OrderState.CANCELLED
        logger.info(f"Journey {self.transaction_id}: order {self.order_id} cancelled")
        return result

    # ------------------------------------------------------------------

    def result(self) -> JourneyResult:
        return JourneyResult(
            success=self.stage not in TERMINAL_STAGES and self.order_state == OrderState.ACTIVE,
            transaction_id=self.transaction_id,
            stages=list(self.history),
            order_id=self.order_id,
            order_state=self.order_state,
            provider=self.provider,
            quantity=self.quantity,
            quote=self.selection.quote.model_dump() if self.selection else None,
            error=self.error,
            failed_action=self.failed_action,
        )

    async def run(
        self,
        fulfillment_type: str,
        quantity: Quantity,
        provider_id: str | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> JourneyResult:
        """Execute the whole happy path. Failures come back in the result."""
        logger.info(f"Starting Beckn journey {self.transaction_id} ({fulfillment_type})")
        try:
            await self.search(fulfillment_type, quantity)
            await self.select(quantity, provider_id)
            await self.init(start_time, end_time)
            await self.confirm()
            await self.status()
        except ProtocolStageFailure:
            return self.result()
        logger.info(f"Beckn journey {self.transaction_id} complete: order {self.order_id}")
        return self.result()


async def run_journey(
    gateway: ProtocolGateway,
    fulfillment_type: str,
    quantity: Quantity,
    provider_id: str | None = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    config: Settings | None = None,
) -> JourneyResult:
    journey = Journey(gateway, config=config)
    return await journey.run(
        fulfillment_type,
        quantity,
        provider_id=provider_id,
        start_time=start_time,
        end_time=end_time,
    )
