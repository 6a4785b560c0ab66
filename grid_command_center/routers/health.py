from fastapi import APIRouter
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import Depends

from grid_command_center.dependencies import get_grid_state, get_session
from grid_command_center.grid.state import GridState
from grid_command_center.models.audit_log import AuditLog

router = APIRouter()


@router.get("")
async def health_check():
    """Report basic service health.

    Returns:
        A simple status message.
    """
    return {"status": "ok"}


@router.get("/db-check")
async def db_check(session: AsyncSession = Depends(get_session)):
    """Verify database connectivity and the audit table.

    Returns:
        Status details indicating database health.
    """
    try:
        await session.execute(text("SELECT 1"))
        await session.execute(select(func.count()).select_from(AuditLog))
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "details": str(e)}


@router.get("/demo-status")
async def demo_status(
    grid: GridState = Depends(get_grid_state),
    session: AsyncSession = Depends(get_session),
):
    """Demo-specific status check with a grid overview."""
    snapshots = grid.snapshot()
    try:
        result = await session.execute(select(func.count()).select_from(AuditLog))
        audit_count = result.scalar() or 0
        database = "connected"
    except Exception as e:
        audit_count = None
        database = f"error: {e}"

    return {
        "status": "ok",
        "demo_ready": database == "connected",
        "metrics": {
            "feeder_count": len(snapshots),
            "critical_feeders": sum(1 for s in snapshots if s.status == "critical"),
            "warning_feeders": sum(1 for s in snapshots if s.status == "warning"),
            "active_ders": sum(len(s.active_ders) for s in snapshots),
            "pending_auto_activations": sum(1 for s in snapshots if s.pending_auto_activation),
            "audit_log_count": audit_count,
        },
        "services": {
            "database": database,
            "api": "operational",
        },
    }
