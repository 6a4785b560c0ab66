"""Service layer helpers (load simulation, auto-activation monitor, dispatch, planner)."""

from .auto_activation_monitor import AutoActivationMonitor, FeederState, ScanReport
from .load_simulator import LoadSimulator

__all__ = ["AutoActivationMonitor", "FeederState", "ScanReport", "LoadSimulator"]
