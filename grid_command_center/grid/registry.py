"""
DER Activation Registry

Tracks which DERs are mitigating which feeders, keyed by Beckn order id, and
keeps each feeder's active DER contribution in step with its records.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable

from grid_command_center.exceptions import InvariantViolationError
from grid_command_center.grid.feeders import FeederLoadModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ActiveDER:
    order_id: str
    der_id: str
    feeder_id: str
    output: float  # kW
    activated_at: datetime


class ActivationRegistry:
    def __init__(
        self,
        load_model: FeederLoadModel,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._load_model = load_model
        self._clock = clock or (lambda: datetime.now(UTC))
        self._active: dict[str, ActiveDER] = {}
        self._last_activation: dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._active)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._active

    def activate(self, der_id: str, feeder_id: str, output: float, order_id: str) -> ActiveDER:
        """Record an active DER and add its output to the feeder's mitigation."""
        # Raises FeederNotFoundError before anything is recorded
        self._load_model.get(feeder_id)
        if order_id in self._active:
            raise InvariantViolationError(f"Order {order_id} is already active")
        if not math.isfinite(output) or output < 0:
            raise InvariantViolationError(f"DER output must be finite and non-negative, got {output}")

        record = ActiveDER(
            order_id=order_id,
            der_id=der_id,
            feeder_id=feeder_id,
            output=output,
            activated_at=self._clock(),
        )
        self._active[order_id] = record
        self._last_activation[feeder_id] = record.activated_at
        self._load_model.add_contribution(feeder_id, output)
        logger.info(
            f"Activated DER {der_id} on feeder {feeder_id} "
            f"({output:.1f} kW, order {order_id})"
        )
        return record

    def deactivate(self, order_id: str) -> ActiveDER | None:
        """Remove an active DER. Unknown order ids are ignored."""
        record = self._active.pop(order_id, None)
        if record is None:
            logger.debug(f"Deactivate for unknown order {order_id} ignored")
            return None
        self._load_model.remove_contribution(record.feeder_id, record.output)
        logger.info(
            f"Deactivated DER {record.der_id} on feeder {record.feeder_id} "
            f"({record.output:.1f} kW, order {order_id})"
        )
        return record

    def get(self, order_id: str) -> ActiveDER | None:
        return self._active.get(order_id)

    def list_by_feeder(self, feeder_id: str) -> list[ActiveDER]:
        return [record for record in self._active.values() if record.feeder_id == feeder_id]

    def list_all(self) -> list[ActiveDER]:
        return list(self._active.values())

    def response_time_ms(self, feeder_id: str) -> int | None:
        """Milliseconds since the feeder's most recent activation, if any."""
        activated_at = self._last_activation.get(feeder_id)
        if activated_at is None:
            return None
        return int((self._clock() - activated_at).total_seconds() * 1000)
