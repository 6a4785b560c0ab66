"""
Beckn Protocol Gateways

A ``ProtocolGateway`` performs single Beckn stage calls for a journey. The
``MockGateway`` answers locally from the seeded DER catalogue and tracks
order state in memory; the ``SandboxGateway`` forwards every stage to a BAP
Sandbox over HTTP.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Iterable
from uuid import uuid4

import httpx
from pydantic import TypeAdapter, ValidationError

from grid_command_center.core.config import Settings, settings
from grid_command_center.schemas.beckn import (
    BecknAction,
    BecknContext,
    CancelResult,
    Cancelled,
    ConfirmResult,
    Confirmed,
    DERResource,
    InitResult,
    Initialized,
    OrderState,
    Price,
    Quantity,
    Quote,
    SearchFound,
    SearchNotFound,
    SearchResult,
    SelectResult,
    Selected,
    StageFailed,
    StatusReport,
    StatusResult,
)

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12].upper()}"


def create_context(
    action: BecknAction,
    config: Settings | None = None,
    transaction_id: str | None = None,
) -> BecknContext:
    """Build the context block for one Beckn message."""
    config = config or settings
    return BecknContext(
        action=action,
        transaction_id=transaction_id or uuid4().hex,
        message_id=uuid4().hex,
        timestamp=datetime.now(UTC),
        bap_id=config.bap_id,
        bap_uri=config.bap_uri,
    )


class ProtocolGateway(ABC):
    """One method per Beckn stage. Failures are returned, not raised."""

    @abstractmethod
    async def search(
        self, context: BecknContext, fulfillment_type: str, quantity: Quantity | None = None
    ) -> SearchResult: ...

    @abstractmethod
    async def select(
        self, context: BecknContext, provider_id: str, quantity: Quantity
    ) -> SelectResult: ...

    @abstractmethod
    async def init(
        self, context: BecknContext, provider_id: str, start_time: datetime, end_time: datetime
    ) -> InitResult: ...

    @abstractmethod
    async def confirm(
        self, context: BecknContext, order_id: str, provider_id: str
    ) -> ConfirmResult: ...

    @abstractmethod
    async def status(self, context: BecknContext, order_id: str) -> StatusResult: ...

    @abstractmethod
    async def cancel(self, context: BecknContext, order_id: str) -> CancelResult: ...

    async def aclose(self) -> None:
        return None


class MockGateway(ProtocolGateway):
    """In-process gateway backed by a static DER catalogue.

    Orders move DRAFT -> ACTIVE -> CANCELLED and the state is reported back
    by ``status``. ``fail_on`` makes the named actions return ``StageFailed``
    so callers can exercise failure paths.
    """

    def __init__(
        self,
        catalog: Iterable[DERResource] | None = None,
        fail_on: Iterable[str] = (),
        fulfillment_types: dict[str, set[str]] | None = None,
    ) -> None:
        if catalog is None or fulfillment_types is None:
            from grid_command_center.data import seed

            catalog = seed.list_ders() if catalog is None else catalog
            fulfillment_types = seed.FULFILLMENT_DER_TYPES if fulfillment_types is None else fulfillment_types
        self._catalog = list(catalog)
        self._fulfillment_types = fulfillment_types
        self.fail_on: set[str] = set(fail_on)
        self._orders: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []

    def _failed(self, context: BecknContext) -> StageFailed | None:
        self.calls.append(context.action)
        logger.debug(f"[Mock BAP] {context.action.upper()} txn={context.transaction_id}")
        if context.action in self.fail_on:
            return StageFailed(context=context, error=f"Simulated {context.action} failure")
        return None

    def order_state(self, order_id: str) -> OrderState | None:
        order = self._orders.get(order_id)
        return order["state"] if order else None

    async def search(self, context, fulfillment_type, quantity=None):
        failed = self._failed(context)
        if failed is not None:
            return failed
        allowed = self._fulfillment_types.get(fulfillment_type, set())
        providers = [
            der for der in self._catalog
            if der.type in allowed and der.availability in (None, "available")
        ]
        if quantity is not None:
            # Prefer providers able to cover the requested amount
            providers = [der for der in providers if der.capacity >= quantity.value] or providers
        if not providers:
            return SearchNotFound(context=context)
        return SearchFound(context=context, providers=providers)

    async def select(self, context, provider_id, quantity):
        failed = self._failed(context)
        if failed is not None:
            return failed
        provider = next((der for der in self._catalog if der.id == provider_id), None)
        if provider is None:
            return StageFailed(context=context, error=f"Unknown provider {provider_id}")
        price = quantity.value * (provider.price_per_unit or 0)
        return Selected(
            context=context,
            selection_id=new_id("SEL"),
            provider_id=provider_id,
            quote=Quote(price=Price(value=f"{price:.2f}")),
        )

    async def init(self, context, provider_id, start_time, end_time):
        failed = self._failed(context)
        if failed is not None:
            return failed
        order_id = new_id("ORD")
        self._orders[order_id] = {
            "provider_id": provider_id,
            "state": OrderState.DRAFT,
            "start_time": start_time,
            "end_time": end_time,
        }
        return Initialized(context=context, order_id=order_id, provider_id=provider_id)

    async def confirm(self, context, order_id, provider_id):
        failed = self._failed(context)
        if failed is not None:
            return failed
        order = self._orders.get(order_id)
        if order is None:
            return StageFailed(context=context, error=f"Unknown order {order_id}")
        if order["state"] != OrderState.DRAFT:
            return StageFailed(context=context, error=f"Order {order_id} is {order['state'].value}")
        order["state"] = OrderState.ACTIVE
        return Confirmed(context=context, order_id=order_id, activation_time=datetime.now(UTC))

    async def status(self, context, order_id):
        failed = self._failed(context)
        if failed is not None:
            return failed
        order = self._orders.get(order_id)
        if order is None:
            return StageFailed(context=context, error=f"Unknown order {order_id}")
        state = order["state"]
        if state == OrderState.ACTIVE and order["end_time"] <= datetime.now(UTC):
            state = order["state"] = OrderState.COMPLETED
        return StatusReport(context=context, order_id=order_id, state=state)

    async def cancel(self, context, order_id):
        failed = self._failed(context)
        if failed is not None:
            return failed
        order = self._orders.get(order_id)
        if order is None:
            return StageFailed(context=context, error=f"Unknown order {order_id}")
        if order["state"] not in (OrderState.DRAFT, OrderState.ACTIVE):
            return StageFailed(context=context, error=f"Order {order_id} is {order['state'].value}")
        order["state"] = OrderState.CANCELLED
        return Cancelled(context=context, order_id=order_id)


class SandboxGateway(ProtocolGateway):
    """Forwards stage calls to a BAP Sandbox at ``{base_url}/api/sandbox/{action}``.

    The sandbox is expected to answer with the stage result JSON (the same
    shapes the mock returns, minus the context, which is echoed back here).
    """

    _adapters = {
        "search": TypeAdapter(SearchResult),
        "select": TypeAdapter(SelectResult),
        "init": TypeAdapter(InitResult),
        "confirm": TypeAdapter(ConfirmResult),
        "status": TypeAdapter(StatusResult),
        "cancel": TypeAdapter(CancelResult),
    }

    def __init__(
        self,
        config: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or settings
        self._client = client or httpx.AsyncClient(
            base_url=self._config.bap_sandbox_url,
            timeout=self._config.beckn_timeout_s,
        )

    async def _call(self, context: BecknContext, message: dict[str, Any]):
        action = context.action
        payload = {"context": context.model_dump(mode="json"), "message": message}
        logger.info(f"[BAP Sandbox] {action.upper()}: sending request txn={context.transaction_id}")
        try:
            response = await self._client.post(f"/api/sandbox/{action}", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException:
            logger.error(f"[BAP Sandbox] {action} timed out")
            return StageFailed(context=context, error=f"{action} timed out")
        except httpx.HTTPError as e:
            logger.error(f"[BAP Sandbox] {action} request failed: {e}")
            return StageFailed(context=context, error=str(e))
        except ValueError as e:
            return StageFailed(context=context, error=f"Invalid JSON from sandbox: {e}")

        if not isinstance(body, dict):
            return StageFailed(context=context, error="Unexpected sandbox response")
        body.setdefault("context", payload["context"])
        try:
            return self._adapters[action].validate_python(body)
        except ValidationError as e:
            logger.error(f"[BAP Sandbox] {action} returned an unexpected shape: {e}")
            return StageFailed(context=context, error=f"Malformed {action} response")

    async def search(self, context, fulfillment_type, quantity=None):
        fulfillment: dict[str, Any] = {"type": fulfillment_type}
        if quantity is not None:
            fulfillment["quantity"] = quantity.model_dump()
        return await self._call(context, {"intent": {"fulfillment": fulfillment}})

    async def select(self, context, provider_id, quantity):
        message = {
            "order": {
                "provider": {"id": provider_id},
                "items": [{"id": new_id("ITEM"), "quantity": {"selected": quantity.model_dump()}}],
            }
        }
        return await self._call(context, message)

    async def init(self, context, provider_id, start_time, end_time):
        message = {
            "order": {
                "provider": {"id": provider_id},
                "fulfillments": [
                    {"start": {"time": {"range": {
                        "start": start_time.isoformat(),
                        "end": end_time.isoformat(),
                    }}}}
                ],
                "billing": {"name": "Grid Operator", "email": "operator@grid.local"},
            }
        }
        return await self._call(context, message)

    async def confirm(self, context, order_id, provider_id):
        return await self._call(context, {"order": {"id": order_id, "provider": {"id": provider_id}}})

    async def status(self, context, order_id):
        return await self._call(context, {"order_id": order_id})

    async def cancel(self, context, order_id):
        return await self._call(context, {"order_id": order_id})

    async def aclose(self) -> None:
        await self._client.aclose()


def build_gateway(config: Settings | None = None) -> ProtocolGateway:
    config = config or settings
    if config.beckn_gateway == "sandbox":
        logger.info(f"Using BAP Sandbox gateway at {config.bap_sandbox_url}")
        return SandboxGateway(config=config)
    logger.info("Using mock Beckn gateway")
    return MockGateway()
