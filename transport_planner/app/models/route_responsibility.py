"""
Route responsibility database model.

Grants a user a role on a route; active grants decide who is alerted.
"""

from sqlalchemy import Column, Integer, Text, Boolean, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
from transport_planner.app.models.team_enums import ResponsibilityRole


class RouteResponsibility(Base):
    __tablename__ = "route_responsibilities"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    route_id = Column(Integer, ForeignKey('routes.id', ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(ResponsibilityRole), nullable=False)

    assigned_at = Column(DateTime, nullable=False)
    assigned_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('route_id', 'user_id', 'role', name='uq_route_responsibility'),
    )

    def __repr__(self):
        return f"<RouteResponsibility(route={self.route_id}, user={self.user_id}, role='{self.role}')>"
