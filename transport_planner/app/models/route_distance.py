"""
Route distance cache model.

Repositioning distance from the end of one route to the start of another.
"""

from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base


class RouteDistance(Base):
    __tablename__ = "route_distance_cache"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    from_route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)
    to_route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)

    distance_km = Column(Float, nullable=False)
    travel_time_minutes = Column(Integer, nullable=True)
    traffic_factor = Column(Float, default=1.0, nullable=False)

    last_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('from_route_id', 'to_route_id', name='uq_route_distance_pair'),
    )

    def __repr__(self):
        return f"<RouteDistance({self.from_route_id}->{self.to_route_id}, {self.distance_km}km)>"
