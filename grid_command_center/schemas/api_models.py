from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

from grid_command_center.schemas.beckn import FulfillmentType, Quantity

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None


class DERSearchRequest(BaseModel):
    fulfillmentType: FulfillmentType = "energy-dispatch"
    quantity: Optional[Quantity] = None


class DERSelectRequest(BaseModel):
    quantity: Quantity
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None


class DERActivateRequest(BaseModel):
    quantity: Quantity
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    feederId: Optional[str] = None
    fulfillmentType: FulfillmentType = "energy-dispatch"


class SelectionOut(BaseModel):
    selectionId: str
    derId: str
    quote: dict[str, Any]


class ActivationOut(BaseModel):
    orderId: str
    derId: str
    status: str
    output: float
    feederId: Optional[str] = None
    transactionId: str
    stages: list[str]


class ActiveDEROut(BaseModel):
    orderId: str
    derId: str
    feederId: str
    output: float
    activatedAt: datetime


class OrderStatusOut(BaseModel):
    orderId: str
    status: str
    currentOutput: Optional[float] = None


class FeederOut(BaseModel):
    id: str
    name: str
    substationName: str
    baseLoad: float
    currentLoad: float
    capacity: float
    loadPercent: float
    status: Literal["critical", "warning", "normal"]
    criticality: str
    connectedDERs: int
    activeDERContribution: float
    activeDERs: list[ActiveDEROut] = Field(default_factory=list)
    responseTime: Optional[int] = None
    isResponding: bool = False
    pendingAutoActivation: bool = False


class AutoActivationRequestOut(BaseModel):
    feederId: str
    feederName: str
    currentLoad: float
    capacity: float
    loadPercent: float


class AutoActivationConfirmOut(BaseModel):
    feederId: str
    activations: list[ActivationOut]
    failed: int


class GridProblemIn(BaseModel):
    urgency: Literal["low", "medium", "high", "critical"]
    description: str
    type: Literal["demand-spike", "feeder-overload", "forecast-congestion", "general-optimization"] = (
        "general-optimization"
    )
    feederId: Optional[str] = None
    substationId: Optional[str] = None
    currentLoad: Optional[float] = None
    capacity: Optional[float] = Field(default=None, gt=0)


class AgentDecisionOut(BaseModel):
    step: int
    action: str
    reasoning: str
    expectedOutcome: str


class OrchestrationOut(BaseModel):
    success: bool
    decisions: list[AgentDecisionOut]
    orderId: Optional[str] = None
    executionTime: int
    message: str
    details: Optional[str] = None
    stages: list[str] = Field(default_factory=list)


class AuditLogOut(BaseModel):
    id: str
    timestamp: datetime
    action: str
    user: str
    target: str
    status: str
    description: Optional[str] = None
