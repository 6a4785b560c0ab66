"""
Auto-Activation Monitor

Periodically re-evaluates every feeder. DERs are stood down once a feeder's
load drops below the low threshold, and critical feeders with no active
mitigation are flagged for operator confirmation.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from grid_command_center import crud
from grid_command_center.core.config import Settings, settings
from grid_command_center.exceptions import ControlLoopIterationError
from grid_command_center.grid.registry import ActiveDER
from grid_command_center.grid.state import GridState

logger = logging.getLogger(__name__)

SYSTEM_USER = "auto-activation-monitor"


class FeederState(str, Enum):
    NORMAL = "normal"
    MITIGATING = "mitigating"
    OVER_MITIGATED = "over_mitigated"
    CRITICAL_UNMITIGATED = "critical_unmitigated"
    CRITICAL_PENDING = "critical_pending"


def classify_feeder_state(
    load_percent: float,
    active_count: int,
    pending: bool,
    low_threshold: float,
    high_threshold: float,
) -> FeederState:
    if active_count > 0:
        if load_percent < low_threshold:
            return FeederState.OVER_MITIGATED
        return FeederState.MITIGATING
    if load_percent > high_threshold:
        return FeederState.CRITICAL_PENDING if pending else FeederState.CRITICAL_UNMITIGATED
    return FeederState.NORMAL


@dataclass
class ScanReport:
    deactivated: dict[str, list[ActiveDER]] = field(default_factory=dict)
    flagged: list[str] = field(default_factory=list)
    cleared: list[str] = field(default_factory=list)
    states: dict[str, FeederState] = field(default_factory=dict)
    errors: list[ControlLoopIterationError] = field(default_factory=list)


class AutoActivationMonitor:
    """
    Level-triggered control loop over the shared ``GridState``.

    Each scan looks at the whole grid again, so the scan interval bounds how
    quickly the monitor reacts to a load change.
    """

    def __init__(
        self,
        grid: GridState,
        config: Settings | None = None,
        session_factory: Callable[[], AsyncSession] | None = None,
    ) -> None:
        self._grid = grid
        self._config = config or settings
        self._session_factory = session_factory
        self._monitor_task: asyncio.Task | None = None
        self._started = False

        self._interval = self._config.auto_activation_interval_s
        self._low_threshold = self._config.low_threshold_pct
        self._high_threshold = self._config.high_threshold_pct

    async def start(self) -> None:
        """Start the auto-activation monitor."""
        if self._started:
            logger.warning("Auto-activation monitor already started")
            return

        if not self._config.auto_activation_enabled:
            logger.info("Auto-activation monitor disabled via configuration")
            return

        self._started = True
        logger.info(
            f"Starting auto-activation monitor "
            f"(low: {self._low_threshold}%, high: {self._high_threshold}%, "
            f"interval: {self._interval}s)"
        )
        self._monitor_task = asyncio.create_task(self._monitor_feeders())

    async def stop(self) -> None:
        """Stop the auto-activation monitor."""
        if not self._started:
            return

        logger.info("Stopping auto-activation monitor")
        self._started = False

        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

    async def _monitor_feeders(self) -> None:
        """Main monitoring loop."""
        while self._started:
            try:
                await asyncio.sleep(self._interval)
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in auto-activation monitoring loop: {e}", exc_info=True)

    async def run_once(self) -> ScanReport:
        """One scan plus its audit trail."""
        report = self.scan()
        await self._record(report)
        return report

    def scan(self) -> ScanReport:
        """Evaluate every feeder once. Failures are isolated per feeder."""
        report = ScanReport()
        for feeder_id in self._grid.feeder_ids:
            try:
                self._evaluate(feeder_id, report)
            except Exception as e:
                logger.exception(f"Auto-activation check failed for feeder {feeder_id}")
                report.errors.append(ControlLoopIterationError(feeder_id, e))
        return report

    def _evaluate(self, feeder_id: str, report: ScanReport) -> None:
        grid = self._grid
        # Read and act under one lock so a concurrent activation cannot interleave
        with grid.lock:
            snapshot = grid.feeder_snapshot(feeder_id)
            state = classify_feeder_state(
                snapshot.load_percent,
                len(snapshot.active_ders),
                snapshot.pending_auto_activation,
                self._low_threshold,
                self._high_threshold,
            )
            report.states[feeder_id] = state

            if state is FeederState.OVER_MITIGATED:
                removed = grid.deactivate_feeder(feeder_id)
                report.deactivated[feeder_id] = removed
                logger.info(
                    f"Feeder {feeder_id} at {snapshot.load_percent:.1f}% "
                    f"(< {self._low_threshold}%), deactivated {len(removed)} DERs"
                )
                if grid.clear_pending(feeder_id):
                    report.cleared.append(feeder_id)
            elif state is FeederState.CRITICAL_UNMITIGATED:
                if grid.flag_pending(feeder_id):
                    report.flagged.append(feeder_id)
                    logger.warning(
                        f"Feeder {feeder_id} critical at {snapshot.load_percent:.1f}% "
                        f"with no active DERs, awaiting auto-activation confirmation"
                    )
            elif state is not FeederState.CRITICAL_PENDING and snapshot.pending_auto_activation:
                # Condition resolved without operator input
                grid.clear_pending(feeder_id)
                report.cleared.append(feeder_id)
                logger.info(f"Feeder {feeder_id} no longer critical and unmitigated, flag cleared")

    async def _record(self, report: ScanReport) -> None:
        if self._session_factory is None:
            return
        entries = []
        for feeder_id, removed in report.deactivated.items():
            for record in removed:
                entries.append((
                    "DER Auto-Deactivated",
                    record.der_id,
                    "success",
                    f"Feeder {feeder_id} below {self._low_threshold}%, order {record.order_id} "
                    f"stood down ({record.output:.1f} kW)",
                ))
        for feeder_id in report.flagged:
            entries.append((
                "Auto-Activation Requested",
                feeder_id,
                "info",
                f"Feeder {feeder_id} above {self._high_threshold}% with no active DERs",
            ))
        if not entries:
            return
        try:
            async with self._session_factory() as session:
                for action, target, status, description in entries:
                    await crud.add_audit_log(
                        session,
                        action=action,
                        user=SYSTEM_USER,
                        target=target,
                        status=status,
                        description=description,
                    )
        except Exception as e:
            logger.error(f"Failed to write auto-activation audit entries: {e}", exc_info=True)
