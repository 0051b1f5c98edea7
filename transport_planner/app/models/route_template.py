"""
Route template database model.

A template is the recurring definition of a route schedule: which weekdays,
over which date range, with which default times and resources. Concrete
days are derived from it by the materializer; per-day deviations live in
OccurrenceOverride.
"""

from sqlalchemy import Column, Integer, String, Text, Date, Time, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
from transport_planner.app.models.schedule_enums import ScheduleType, TemplateStatus


class RouteTemplate(Base):
    __tablename__ = "route_templates"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)
    schedule_name = Column(String(200), nullable=False)
    schedule_type = Column(Enum(ScheduleType), default=ScheduleType.RECURRING, nullable=False)

    # Recurrence rule: ISO weekdays, 1=Monday .. 7=Sunday
    days_of_week = Column(JSON, nullable=False)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=True, index=True)

    standby_time = Column(Time, nullable=True)
    departure_time = Column(Time, nullable=True)

    default_driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True, index=True)
    default_vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=True, index=True)

    owner_user_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    helper_user_id = Column(Integer, ForeignKey('users.id'), nullable=True)

    priority = Column(Integer, default=1, nullable=False)
    status = Column(Enum(TemplateStatus), default=TemplateStatus.PENDING, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    # Compare-and-swap token; bumped by the ORM on every UPDATE
    version = Column(Integer, nullable=False, default=1)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<RouteTemplate(id={self.id}, route_id={self.route_id}, status='{self.status}')>"
