"""Simulated grid: feeder load model, DER activation registry and their shared state."""

from .feeders import Feeder, FeederLoadModel, classify_load, next_variance
from .registry import ActivationRegistry, ActiveDER
from .state import FeederSnapshot, GridState

__all__ = [
    "Feeder",
    "FeederLoadModel",
    "classify_load",
    "next_variance",
    "ActivationRegistry",
    "ActiveDER",
    "FeederSnapshot",
    "GridState",
]
