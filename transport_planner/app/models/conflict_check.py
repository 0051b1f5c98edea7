"""
Conflict check database model.

One row per double-booked driver or vehicle on a date. Rows for a date are
replaced wholesale by each detection run.
"""

from sqlalchemy import Column, Integer, Text, Date, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
from transport_planner.app.models.analysis_enums import ConflictType, ConflictSeverity, ConflictStatus


class ConflictCheck(Base):
    __tablename__ = "conflict_checks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    check_date = Column(Date, nullable=False, index=True)

    # Exactly one of these is set, depending on conflict_type
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True, index=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=True, index=True)

    # Occurrence ids ("<template_id>:<date>"), sorted
    conflicting_occurrences = Column(JSON, nullable=False)

    conflict_type = Column(Enum(ConflictType), nullable=False)
    severity = Column(Enum(ConflictSeverity), default=ConflictSeverity.MEDIUM, nullable=False)
    status = Column(Enum(ConflictStatus), default=ConflictStatus.OPEN, nullable=False, index=True)
    resolution_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ConflictCheck(date={self.check_date}, type='{self.conflict_type}', size={len(self.conflicting_occurrences or [])})>"
