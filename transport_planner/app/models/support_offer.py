"""
Support offer database model.

A time-limited proposal from one planner to another to lend resources or take
over a scheduled route. Unanswered offers expire; they are never deleted.
"""

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
from transport_planner.app.models.team_enums import OfferType, OfferPriority, OfferStatus


class SupportOffer(Base):
    __tablename__ = "support_offers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    offer_code = Column(String(20), unique=True, nullable=True)

    template_id = Column(Integer, ForeignKey('route_templates.id'), nullable=False, index=True)
    schedule_date = Column(Date, nullable=True)  # None = offer concerns the whole template

    from_user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    to_user_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)

    proposed_driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=True)
    proposed_vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=True)

    offer_type = Column(Enum(OfferType), default=OfferType.RESOURCE, nullable=False)
    message = Column(Text, nullable=True)
    priority = Column(Enum(OfferPriority), default=OfferPriority.MEDIUM, nullable=False)
    status = Column(Enum(OfferStatus), default=OfferStatus.PENDING, nullable=False, index=True)

    expires_at = Column(DateTime, nullable=False, index=True)
    responded_at = Column(DateTime, nullable=True)
    responded_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    response_message = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<SupportOffer(id={self.id}, template={self.template_id}, status='{self.status}')>"
