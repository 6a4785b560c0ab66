"""Beckn (DEG) protocol gateways and the fulfillment journey state machine."""

from .gateway import MockGateway, ProtocolGateway, SandboxGateway, build_gateway, create_context
from .journey import Journey, JourneyResult, JourneyStage, run_journey

__all__ = [
    "MockGateway",
    "ProtocolGateway",
    "SandboxGateway",
    "build_gateway",
    "create_context",
    "Journey",
    "JourneyResult",
    "JourneyStage",
    "run_journey",
]
