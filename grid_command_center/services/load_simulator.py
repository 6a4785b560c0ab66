"""
Load Simulator

Advances the feeder random walk on a fixed interval.
"""
import asyncio
import logging

from grid_command_center.core.config import Settings, settings
from grid_command_center.grid.state import GridState

logger = logging.getLogger(__name__)


class LoadSimulator:
    def __init__(self, grid: GridState, config: Settings | None = None) -> None:
        self._grid = grid
        self._config = config or settings
        self._tick_task: asyncio.Task | None = None
        self._started = False
        self._interval = self._config.load_tick_interval_s

    async def start(self) -> None:
        """Start the load simulation."""
        if self._started:
            logger.warning("Load simulator already started")
            return

        if not self._config.load_simulation_enabled:
            logger.info("Load simulation disabled via configuration")
            return

        self._started = True
        logger.info(f"Starting load simulation (tick interval: {self._interval}s)")
        self._tick_task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the load simulation."""
        if not self._started:
            return

        logger.info("Stopping load simulation")
        self._started = False

        if self._tick_task:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None

    async def _run(self) -> None:
        while self._started:
            try:
                await asyncio.sleep(self._interval)
                self._grid.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in load simulation loop: {e}", exc_info=True)
