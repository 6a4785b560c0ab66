"""CRUD helpers shared by routers and services."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from grid_command_center.models.audit_log import AuditLog

AUDIT_STATUSES = ("success", "error", "info")


# ---------------------------------------------------------------------------
# Audit log helpers


async def add_audit_log(
    session: AsyncSession,
    *,
    action: str,
    user: str,
    target: str,
    status: str,
    description: str,
) -> AuditLog:
    """Append an entry to the audit log."""

    if status not in AUDIT_STATUSES:
        raise ValueError(f"Unknown audit status: {status}")
    log = AuditLog(
        log_id=f"LOG-{uuid4().hex[:8].upper()}",
        timestamp=datetime.now(UTC),
        action=action,
        user=user,
        target=target,
        status=status,
        description=description,
    )
    session.add(log)
    await session.commit()
    await session.refresh(log)
    return log


async def list_audit_logs(
    session: AsyncSession,
    *,
    target: str | None = None,
    limit: int | None = None,
) -> list[AuditLog]:
    """Return audit entries, newest first."""

    stmt: Select[tuple[AuditLog]] = select(AuditLog)
    if target is not None:
        stmt = stmt.where(AuditLog.target == target)
    stmt = stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
