"""
Feeder Load Model

Keeps the fluctuating demand of each simulated feeder and derives the
current load and status tier on every read. All quantities are in kW.
"""
from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from grid_command_center.exceptions import FeederNotFoundError, InvariantViolationError

logger = logging.getLogger(__name__)

FeederStatus = Literal["critical", "warning", "normal"]
Criticality = Literal["critical", "high", "medium", "low"]

DEFAULT_WARNING_PCT = 75.0
DEFAULT_CRITICAL_PCT = 90.0

# Random walk shape
NORMAL_VARIANCE_RATIO = 0.05  # ±5% of base load
WIDE_VARIANCE_RATIO = 0.08  # every WIDE_VARIANCE_EVERY ticks
WIDE_VARIANCE_EVERY = 5
SPIKE_RATIO = 0.12
SPIKE_EVERY = 10
SPIKE_PROBABILITY = 0.5
STEP_RATIO = 0.2
PULLBACK_RATIO = 0.8
DECAY = 0.95


@dataclass
class Feeder:
    feeder_id: str
    name: str
    substation_name: str
    base_load: float
    capacity: float
    criticality: Criticality = "medium"
    connected_ders: int = 0
    variance: float = 0.0
    target_load: float | None = None
    active_der_contribution: float = 0.0

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise InvariantViolationError(
                f"Feeder {self.feeder_id} capacity must be positive, got {self.capacity}"
            )
        if self.base_load < 0:
            raise InvariantViolationError(
                f"Feeder {self.feeder_id} base load must not be negative, got {self.base_load}"
            )
        if self.target_load is None:
            self.target_load = self.base_load

    @property
    def current_load(self) -> float:
        return max(0.0, self.target_load - self.active_der_contribution)

    @property
    def load_percent(self) -> float:
        return self.current_load / self.capacity * 100


def classify_load(
    current_load: float,
    capacity: float,
    warning_pct: float = DEFAULT_WARNING_PCT,
    critical_pct: float = DEFAULT_CRITICAL_PCT,
) -> FeederStatus:
    """Map a load/capacity ratio onto the critical/warning/normal tiers."""
    percent = current_load / capacity * 100
    if percent > critical_pct:
        return "critical"
    if percent > warning_pct:
        return "warning"
    return "normal"


def next_variance(variance: float, base_load: float, tick_index: int, rng: random.Random) -> float:
    """Advance one feeder's load variance by one simulation tick.

    Most ticks apply a small random walk bounded by ±5% of the base load;
    every fifth tick the bound widens to ±8%. Every tenth tick there is an
    even chance of a demand spike to +12%. The result always decays towards
    zero so the load reverts to its base.

    Deterministic for a given ``rng`` state.
    """
    max_variance = base_load * NORMAL_VARIANCE_RATIO
    if tick_index % WIDE_VARIANCE_EVERY == 0:
        max_variance = base_load * WIDE_VARIANCE_RATIO

    if tick_index % SPIKE_EVERY == 0 and rng.random() < SPIKE_PROBABILITY:
        variance = base_load * SPIKE_RATIO
    else:
        variance += (rng.random() - 0.5) * max_variance * STEP_RATIO
        if abs(variance) > max_variance:
            variance = math.copysign(max_variance * PULLBACK_RATIO, variance)

    return variance * DECAY


class FeederLoadModel:
    """Mutable load state for a fixed set of feeders.

    Not thread-safe on its own; ``GridState`` serialises access.
    """

    def __init__(
        self,
        feeders: Iterable[Feeder],
        rng: random.Random | None = None,
        warning_pct: float = DEFAULT_WARNING_PCT,
        critical_pct: float = DEFAULT_CRITICAL_PCT,
        max_load_pct: float = 100.0,
    ) -> None:
        if warning_pct >= critical_pct:
            raise InvariantViolationError("warning threshold must be below critical threshold")
        self._feeders: dict[str, Feeder] = {}
        for feeder in feeders:
            if feeder.feeder_id in self._feeders:
                raise InvariantViolationError(f"Duplicate feeder id {feeder.feeder_id}")
            self._feeders[feeder.feeder_id] = feeder
        self._rng = rng or random.Random()
        self._tick_index = 0
        self.warning_pct = warning_pct
        self.critical_pct = critical_pct
        self.max_load_pct = max_load_pct

    @property
    def tick_index(self) -> int:
        return self._tick_index

    @property
    def feeder_ids(self) -> list[str]:
        return list(self._feeders)

    def feeders(self) -> list[Feeder]:
        return list(self._feeders.values())

    def get(self, feeder_id: str) -> Feeder:
        feeder = self._feeders.get(feeder_id)
        if feeder is None:
            raise FeederNotFoundError(feeder_id)
        return feeder

    def __contains__(self, feeder_id: object) -> bool:
        return feeder_id in self._feeders

    def tick(self) -> None:
        """Apply one random-walk step to every feeder."""
        self._tick_index += 1
        for feeder in self._feeders.values():
            feeder.variance = next_variance(
                feeder.variance, feeder.base_load, self._tick_index, self._rng
            )
            ceiling = feeder.capacity * self.max_load_pct / 100
            feeder.target_load = max(0.0, min(feeder.base_load + feeder.variance, ceiling))
        logger.debug(f"Load tick {self._tick_index} applied to {len(self._feeders)} feeders")

    def get_current_load(self, feeder_id: str) -> float:
        return self.get(feeder_id).current_load

    def load_percent(self, feeder_id: str) -> float:
        return self.get(feeder_id).load_percent

    def get_status(self, feeder_id: str) -> FeederStatus:
        feeder = self.get(feeder_id)
        return classify_load(
            feeder.current_load, feeder.capacity, self.warning_pct, self.critical_pct
        )

    def add_contribution(self, feeder_id: str, output: float) -> None:
        feeder = self.get(feeder_id)
        feeder.active_der_contribution += output

    def remove_contribution(self, feeder_id: str, output: float) -> None:
        feeder = self.get(feeder_id)
        feeder.active_der_contribution = max(0.0, feeder.active_der_contribution - output)
