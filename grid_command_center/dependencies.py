"""FastAPI dependencies shared by the routers."""
from __future__ import annotations

from grid_command_center.beckn.gateway import ProtocolGateway, build_gateway
from grid_command_center.core.config import get_settings
from grid_command_center.db.database import get_session
from grid_command_center.grid.state import GridState

_grid_state: GridState | None = None
_gateway: ProtocolGateway | None = None


def get_grid_state() -> GridState:
    global _grid_state
    if _grid_state is None:
        _grid_state = GridState.from_seed(get_settings())
    return _grid_state


def get_gateway() -> ProtocolGateway:
    global _gateway
    if _gateway is None:
        _gateway = build_gateway(get_settings())
    return _gateway


async def close_gateway() -> None:
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None


__all__ = ["get_session", "get_grid_state", "get_gateway", "close_gateway"]
