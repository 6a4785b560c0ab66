"""
Grid Command Center Exceptions

Custom exceptions for the feeder simulation, the DER activation registry and
Beckn journeys.
"""


class GridCommandError(Exception):
    """Base exception for grid command center operations."""
    pass


class FeederNotFoundError(GridCommandError):
    """Raised when a feeder identifier is not part of the simulated grid."""

    def __init__(self, feeder_id: str) -> None:
        super().__init__(f"Feeder {feeder_id} not found")
        self.feeder_id = feeder_id


class InvariantViolationError(GridCommandError):
    """Raised when an operation would corrupt simulation or journey state."""
    pass


class ProtocolStageFailure(GridCommandError):
    """Raised when a Beckn stage fails and aborts its journey."""

    def __init__(self, action: str, reason: str) -> None:
        super().__init__(f"{action} failed: {reason}")
        self.action = action
        self.reason = reason


class ControlLoopIterationError(GridCommandError):
    """Raised when evaluating a single feeder during a control loop scan fails."""

    def __init__(self, feeder_id: str, cause: Exception) -> None:
        super().__init__(f"Evaluation of feeder {feeder_id} failed: {cause}")
        self.feeder_id = feeder_id
        self.cause = cause
