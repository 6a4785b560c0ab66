"""Beckn protocol payloads for the DEG (Digital Energy Grid) domain.

Each stage result is a tagged union discriminated on ``outcome`` so callers
handle every variant explicitly.
"""
from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

BecknAction = Literal["search", "select", "init", "confirm", "status", "cancel"]
FulfillmentType = Literal["energy-dispatch", "energy-storage", "energy-demand-reduction"]


class OrderState(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class BecknContext(BaseModel):
    domain: Literal["energy:deg"] = "energy:deg"
    action: BecknAction
    transaction_id: str
    message_id: str
    timestamp: datetime
    version: Literal["1.1.0"] = "1.1.0"
    bap_id: str
    bap_uri: str
    bpp_id: Optional[str] = None
    bpp_uri: Optional[str] = None
    ttl: Optional[str] = None


class Quantity(BaseModel):
    amount: str
    unit: Literal["kWh", "kW"] = "kW"

    @field_validator("amount", mode="before")
    @classmethod
    def _check_amount(cls, value: str | int | float) -> str:
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"quantity amount must be numeric, got {value!r}") from None
        if not math.isfinite(parsed):
            raise ValueError(f"quantity amount must be finite, got {value!r}")
        if parsed < 0:
            raise ValueError("quantity amount must not be negative")
        return str(value)

    @property
    def value(self) -> float:
        return float(self.amount)


class DERLocation(BaseModel):
    gps: str
    address: str


class DERResource(BaseModel):
    id: str
    name: str
    type: Literal["battery", "ev", "solar", "demand_response"]
    capacity: float
    currentOutput: float
    location: Optional[DERLocation] = None
    price_per_unit: Optional[float] = None
    availability: Optional[str] = None


class Price(BaseModel):
    currency: str = "GBP"
    value: str


class Quote(BaseModel):
    price: Price
    ttl: str = "PT30M"


# ---------------------------------------------------------------------------
# Stage outcomes


class StageFailed(BaseModel):
    outcome: Literal["failed"] = "failed"
    context: BecknContext
    error: str


class SearchFound(BaseModel):
    outcome: Literal["found"] = "found"
    context: BecknContext
    providers: list[DERResource]


class SearchNotFound(BaseModel):
    outcome: Literal["not_found"] = "not_found"
    context: BecknContext


class Selected(BaseModel):
    outcome: Literal["selected"] = "selected"
    context: BecknContext
    selection_id: str
    provider_id: str
    quote: Quote


class Initialized(BaseModel):
    outcome: Literal["initialized"] = "initialized"
    context: BecknContext
    order_id: str
    provider_id: str
    state: OrderState = OrderState.DRAFT


class Confirmed(BaseModel):
    outcome: Literal["confirmed"] = "confirmed"
    context: BecknContext
    order_id: str
    state: OrderState = OrderState.ACTIVE
    activation_time: datetime


class StatusReport(BaseModel):
    outcome: Literal["status"] = "status"
    context: BecknContext
    order_id: str
    state: OrderState


class Cancelled(BaseModel):
    outcome: Literal["cancelled"] = "cancelled"
    context: BecknContext
    order_id: str
    state: OrderState = OrderState.CANCELLED
    reason: str = "User requested cancellation"


SearchResult = Annotated[Union[SearchFound, SearchNotFound, StageFailed], Field(discriminator="outcome")]
SelectResult = Annotated[Union[Selected, StageFailed], Field(discriminator="outcome")]
InitResult = Annotated[Union[Initialized, StageFailed], Field(discriminator="outcome")]
ConfirmResult = Annotated[Union[Confirmed, StageFailed], Field(discriminator="outcome")]
StatusResult = Annotated[Union[StatusReport, StageFailed], Field(discriminator="outcome")]
CancelResult = Annotated[Union[Cancelled, StageFailed], Field(discriminator="outcome")]
