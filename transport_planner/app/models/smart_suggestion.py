"""
Smart suggestion database model.

A scored back-to-back pairing of two routes on a date.
"""

from sqlalchemy import Column, Integer, Float, Text, Date, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
from transport_planner.app.models.analysis_enums import SuggestionStatus


class SmartSuggestion(Base):
    __tablename__ = "smart_suggestions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    from_route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)
    to_route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)
    suggestion_date = Column(Date, nullable=False, index=True)

    # Occurrences the pairing was computed from
    from_occurrence_id = Column(Text, nullable=True)
    to_occurrence_id = Column(Text, nullable=True)

    gap_minutes = Column(Integer, nullable=False)
    distance_km = Column(Float, nullable=False)
    travel_time_minutes = Column(Integer, nullable=True)
    efficiency_score = Column(Float, nullable=False)
    cost_savings_estimate = Column(Float, nullable=True)

    status = Column(Enum(SuggestionStatus), default=SuggestionStatus.PENDING, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('from_route_id', 'to_route_id', 'suggestion_date', name='uq_suggestion_pair_date'),
    )

    def __repr__(self):
        return f"<SmartSuggestion({self.from_route_id}->{self.to_route_id} on {self.suggestion_date}, score={self.efficiency_score})>"
