"""
Route template and occurrence override schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, time, datetime
from typing import Optional, List
from transport_planner.app.models.schedule_enums import ScheduleType, TemplateStatus, OccurrenceStatus


class RouteTemplateCreate(BaseModel):
    """Recurrence values are checked again by the template store after merging."""
    route_id: int
    schedule_name: str = Field(..., min_length=1, max_length=200)
    schedule_type: ScheduleType = ScheduleType.RECURRING
    days_of_week: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5, 6, 7])
    start_date: date
    end_date: Optional[date] = None
    standby_time: Optional[time] = None
    departure_time: Optional[time] = None
    default_driver_id: Optional[int] = None
    default_vehicle_id: Optional[int] = None
    owner_user_id: Optional[int] = None
    helper_user_id: Optional[int] = None
    priority: int = Field(1, ge=1, le=10)
    status: TemplateStatus = TemplateStatus.PENDING
    notes: Optional[str] = None


class RouteTemplateUpdate(BaseModel):
    schedule_name: Optional[str] = Field(None, min_length=1, max_length=200)
    schedule_type: Optional[ScheduleType] = None
    days_of_week: Optional[List[int]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    standby_time: Optional[time] = None
    departure_time: Optional[time] = None
    default_driver_id: Optional[int] = None
    default_vehicle_id: Optional[int] = None
    owner_user_id: Optional[int] = None
    helper_user_id: Optional[int] = None
    priority: Optional[int] = Field(None, ge=1, le=10)
    status: Optional[TemplateStatus] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = Field(None, description="Version the caller last read")


class RouteTemplateResponse(BaseModel):
    id: int
    route_id: int
    schedule_name: str
    schedule_type: ScheduleType
    days_of_week: List[int]
    start_date: date
    end_date: Optional[date]
    standby_time: Optional[time]
    departure_time: Optional[time]
    default_driver_id: Optional[int]
    default_vehicle_id: Optional[int]
    owner_user_id: Optional[int]
    helper_user_id: Optional[int]
    priority: int
    status: TemplateStatus
    notes: Optional[str]
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OccurrenceOverrideUpsert(BaseModel):
    """Fields left out keep their current value; explicit nulls fall back to the template."""
    driver_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    standby_date: Optional[date] = None
    standby_time: Optional[time] = None
    departure_date: Optional[date] = None
    departure_time: Optional[time] = None
    status: Optional[OccurrenceStatus] = None
    override_reason: Optional[str] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class OccurrenceOverrideResponse(BaseModel):
    id: int
    template_id: int
    schedule_date: date
    driver_id: Optional[int]
    vehicle_id: Optional[int]
    standby_date: Optional[date]
    standby_time: Optional[time]
    departure_date: Optional[date]
    departure_time: Optional[time]
    status: Optional[OccurrenceStatus]
    is_deleted: bool
    override_reason: Optional[str]
    notes: Optional[str]
    version: int

    class Config:
        from_attributes = True
