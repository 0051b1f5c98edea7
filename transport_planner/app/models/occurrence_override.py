"""
Occurrence override database model.

Persisted only for days that deviate from their template. Every field except
the keys is optional: a NULL means "use the template default".
"""

from sqlalchemy import (
    Column, Integer, Text, Boolean, Date, Time, DateTime, ForeignKey, Enum, UniqueConstraint
)
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
from transport_planner.app.models.schedule_enums import OccurrenceStatus


class OccurrenceOverride(Base):
    __tablename__ = "occurrence_overrides"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    template_id = Column(Integer, ForeignKey('route_templates.id', ondelete="CASCADE"), nullable=False, index=True)
    schedule_date = Column(Date, nullable=False, index=True)

    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True, index=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=True, index=True)

    standby_date = Column(Date, nullable=True)
    standby_time = Column(Time, nullable=True)
    departure_date = Column(Date, nullable=True)
    departure_time = Column(Time, nullable=True)

    status = Column(Enum(OccurrenceStatus), nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    override_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('template_id', 'schedule_date', name='uq_occurrence_override_template_date'),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<OccurrenceOverride(template_id={self.template_id}, date={self.schedule_date}, deleted={self.is_deleted})>"
