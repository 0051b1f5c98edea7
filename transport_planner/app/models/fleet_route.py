"""
Route database model.

A route is a fixed origin/destination run for a customer. Schedules refer to
routes; the suggestion engine uses the coordinates and estimated duration.
"""

from sqlalchemy import Column, Integer, String, Text, Float, DateTime, Time, ForeignKey, Enum
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
from transport_planner.app.models.route_enums import RouteStatus


class Route(Base):
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    route_code = Column(String(20), unique=True, index=True, nullable=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=True, index=True)

    # Origin location
    origin_name = Column(String(200), nullable=True)
    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)

    # Destination location
    destination_name = Column(String(200), nullable=True)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)

    estimated_distance_km = Column(Float, nullable=True)
    estimated_duration_minutes = Column(Integer, nullable=True)

    default_standby_time = Column(Time, nullable=True)
    default_departure_time = Column(Time, nullable=True)

    region = Column(String(100), nullable=True, index=True)
    subcontractor = Column(String(200), nullable=True)

    status = Column(Enum(RouteStatus), default=RouteStatus.ACTIVE, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Route(id={self.id}, code='{self.route_code}', name='{self.name}')>"
