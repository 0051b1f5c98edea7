"""
Team collaboration schemas: route responsibility and support offers.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional
from transport_planner.app.models.team_enums import ResponsibilityRole, OfferType, OfferPriority, OfferStatus


class ResponsibilityAssign(BaseModel):
    route_id: int
    user_id: int
    role: ResponsibilityRole
    notes: Optional[str] = None


class ResponsibilityResponse(BaseModel):
    id: int
    route_id: int
    user_id: int
    role: ResponsibilityRole
    assigned_at: datetime
    assigned_by: Optional[int]
    is_active: bool
    notes: Optional[str]

    class Config:
        from_attributes = True


class UserRouteResponse(BaseModel):
    route_id: int
    route_code: Optional[str]
    route_name: str
    role: ResponsibilityRole


class SupportOfferCreate(BaseModel):
    template_id: int
    schedule_date: Optional[date] = None
    to_user_id: Optional[int] = None
    proposed_driver_id: Optional[int] = None
    proposed_vehicle_id: Optional[int] = None
    message: Optional[str] = Field(None, max_length=2000)
    offer_type: OfferType = OfferType.RESOURCE
    priority: OfferPriority = OfferPriority.MEDIUM


class SupportOfferResponse(BaseModel):
    id: int
    offer_code: Optional[str]
    template_id: int
    schedule_date: Optional[date]
    from_user_id: int
    to_user_id: Optional[int]
    proposed_driver_id: Optional[int]
    proposed_vehicle_id: Optional[int]
    offer_type: OfferType
    message: Optional[str]
    priority: OfferPriority
    status: OfferStatus
    expires_at: datetime
    responded_at: Optional[datetime]
    responded_by: Optional[int]
    response_message: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class SupportOfferReply(BaseModel):
    accept: bool
    response_message: Optional[str] = Field(None, max_length=2000)
