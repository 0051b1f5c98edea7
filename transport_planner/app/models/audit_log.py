"""
Audit Log Database Model.

Append-only before/after snapshots of every mutation to a tracked entity.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, Enum
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
import enum


class AuditOperation(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditLog(Base):
    """
    Audit log row.

    old_values is absent for INSERT, new_values is absent for DELETE and
    changed_fields is only filled for UPDATE.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # What was touched
    table_name = Column(String(100), nullable=False, index=True)
    record_id = Column(String(100), nullable=False, index=True)
    operation = Column(Enum(AuditOperation), nullable=False, index=True)

    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    changed_fields = Column(JSON, nullable=True)

    # Who did it (None when unauthenticated or system)
    user_id = Column(Integer, index=True, nullable=True)
    user_email = Column(String(255), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, {self.operation} {self.table_name}:{self.record_id})>"
