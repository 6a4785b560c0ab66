from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from . import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    log_id = Column(String, unique=True, index=True, nullable=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    action = Column(String, nullable=False)
    user = Column(String, nullable=False)
    target = Column(String, index=True, nullable=False)
    status = Column(String, nullable=False)  # success | error | info
    description = Column(Text, nullable=True)
