"""
Grid State

One owned aggregate for the simulated grid: the feeder load model, the DER
activation registry and the pending auto-activation flags. Every mutation
and every snapshot is taken under a single lock so the background loops and
request handlers always see a consistent feeder.
"""
from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from grid_command_center.core.config import Settings
from grid_command_center.grid.feeders import (
    DEFAULT_CRITICAL_PCT,
    DEFAULT_WARNING_PCT,
    Feeder,
    FeederLoadModel,
    FeederStatus,
    classify_load,
)
from grid_command_center.grid.registry import ActivationRegistry, ActiveDER

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeederSnapshot:
    feeder_id: str
    name: str
    substation_name: str
    base_load: float
    target_load: float
    current_load: float
    capacity: float
    load_percent: float
    status: FeederStatus
    criticality: str
    connected_ders: int
    active_der_contribution: float
    active_ders: list[ActiveDER] = field(default_factory=list)
    response_time_ms: int | None = None
    is_responding: bool = False
    pending_auto_activation: bool = False


class GridState:
    def __init__(
        self,
        feeders: list[Feeder],
        *,
        rng: random.Random | None = None,
        warning_pct: float = DEFAULT_WARNING_PCT,
        critical_pct: float = DEFAULT_CRITICAL_PCT,
        max_load_pct: float = 100.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self.load_model = FeederLoadModel(
            feeders,
            rng=rng,
            warning_pct=warning_pct,
            critical_pct=critical_pct,
            max_load_pct=max_load_pct,
        )
        self.registry = ActivationRegistry(self.load_model, clock=clock)
        self._pending: dict[str, None] = {}

    @classmethod
    def from_seed(cls, config: Settings, feeders: list[Feeder] | None = None) -> "GridState":
        from grid_command_center.data.seed import seed_feeders

        rng = random.Random(config.simulation_seed) if config.simulation_seed is not None else None
        return cls(
            feeders if feeders is not None else seed_feeders(),
            rng=rng,
            warning_pct=config.low_threshold_pct,
            critical_pct=config.high_threshold_pct,
            max_load_pct=config.max_load_pct,
        )

    @property
    def lock(self) -> threading.RLock:
        """Held by callers that need several operations to apply atomically."""
        return self._lock

    @property
    def feeder_ids(self) -> list[str]:
        return self.load_model.feeder_ids

    def has_feeder(self, feeder_id: str) -> bool:
        return feeder_id in self.load_model

    # ------------------------------------------------------------------
    # Load

    def tick(self) -> None:
        with self._lock:
            self.load_model.tick()

    # ------------------------------------------------------------------
    # Activation

    def activate(self, der_id: str, feeder_id: str, output: float, order_id: str) -> ActiveDER:
        with self._lock:
            record = self.registry.activate(der_id, feeder_id, output, order_id)
            self._pending.pop(feeder_id, None)
            return record

    def deactivate(self, order_id: str) -> ActiveDER | None:
        with self._lock:
            return self.registry.deactivate(order_id)

    def deactivate_feeder(self, feeder_id: str) -> list[ActiveDER]:
        """Stand down every DER mitigating a feeder."""
        with self._lock:
            self.load_model.get(feeder_id)
            removed = []
            for record in self.registry.list_by_feeder(feeder_id):
                if self.registry.deactivate(record.order_id) is not None:
                    removed.append(record)
            return removed

    def active_ders(self, feeder_id: str | None = None) -> list[ActiveDER]:
        with self._lock:
            if feeder_id is None:
                return self.registry.list_all()
            self.load_model.get(feeder_id)
            return self.registry.list_by_feeder(feeder_id)

    # ------------------------------------------------------------------
    # Pending auto-activation flags

    def flag_pending(self, feeder_id: str) -> bool:
        """Mark a feeder as awaiting auto-activation. False if already pending."""
        with self._lock:
            self.load_model.get(feeder_id)
            if feeder_id in self._pending:
                return False
            self._pending[feeder_id] = None
            return True

    def clear_pending(self, feeder_id: str) -> bool:
        with self._lock:
            self.load_model.get(feeder_id)
            if feeder_id not in self._pending:
                return False
            del self._pending[feeder_id]
            return True

    def is_pending(self, feeder_id: str) -> bool:
        with self._lock:
            return feeder_id in self._pending

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    # ------------------------------------------------------------------
    # Reads

    def feeder_snapshot(self, feeder_id: str) -> FeederSnapshot:
        with self._lock:
            return self._snapshot(self.load_model.get(feeder_id))

    def snapshot(self) -> list[FeederSnapshot]:
        with self._lock:
            return [self._snapshot(feeder) for feeder in self.load_model.feeders()]

    def _snapshot(self, feeder: Feeder) -> FeederSnapshot:
        active = self.registry.list_by_feeder(feeder.feeder_id)
        return FeederSnapshot(
            feeder_id=feeder.feeder_id,
            name=feeder.name,
            substation_name=feeder.substation_name,
            base_load=feeder.base_load,
            target_load=feeder.target_load,
            current_load=feeder.current_load,
            capacity=feeder.capacity,
            load_percent=feeder.load_percent,
            status=classify_load(
                feeder.current_load,
                feeder.capacity,
                self.load_model.warning_pct,
                self.load_model.critical_pct,
            ),
            criticality=feeder.criticality,
            connected_ders=feeder.connected_ders,
            active_der_contribution=feeder.active_der_contribution,
            active_ders=active,
            response_time_ms=self.registry.response_time_ms(feeder.feeder_id),
            is_responding=bool(active),
            pending_auto_activation=feeder.feeder_id in self._pending,
        )

    def reset(self) -> None:
        """Drop every activation and pending flag."""
        with self._lock:
            for record in self.registry.list_all():
                self.registry.deactivate(record.order_id)
            self._pending.clear()
            logger.info("Grid state reset")
