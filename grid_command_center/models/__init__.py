from sqlalchemy.orm import declarative_base

Base = declarative_base()

from .audit_log import AuditLog  # noqa: E402

__all__ = [
    "Base",
    "AuditLog",
]
