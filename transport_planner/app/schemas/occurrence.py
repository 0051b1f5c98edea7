"""
Schedule occurrence schemas.

ScheduleOccurrence is the value the materializer yields: one concrete day of
a template with overrides already merged. It is never stored as a row.
"""

from pydantic import BaseModel
from datetime import date, time, datetime, timedelta
from typing import Optional, List
from transport_planner.app.models.schedule_enums import OccurrenceStatus


def occurrence_key(template_id: int, schedule_date: date) -> str:
    return f"{template_id}:{schedule_date.isoformat()}"


class ScheduleOccurrence(BaseModel):
    occurrence_id: str
    template_id: int
    route_id: int
    route_code: Optional[str] = None
    route_name: Optional[str] = None
    schedule_name: Optional[str] = None
    schedule_date: date

    # Effective values: override when present, template default otherwise
    driver_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    standby_date: date
    standby_time: Optional[time] = None
    departure_date: date
    departure_time: Optional[time] = None
    status: OccurrenceStatus

    owner_user_id: Optional[int] = None
    priority: int = 1
    estimated_duration_minutes: Optional[int] = None

    has_override: bool = False
    override_id: Optional[int] = None

    @property
    def is_cross_day(self) -> bool:
        return self.standby_date != self.departure_date

    @property
    def departure_at(self) -> Optional[datetime]:
        if self.departure_time is None:
            return None
        return datetime.combine(self.departure_date, self.departure_time)

    @property
    def estimated_arrival_at(self) -> Optional[datetime]:
        """Departure plus the route's estimated duration (zero when unknown)."""
        departure = self.departure_at
        if departure is None:
            return None
        return departure + timedelta(minutes=self.estimated_duration_minutes or 0)


class OccurrenceFilters(BaseModel):
    route_id: Optional[int] = None
    template_id: Optional[int] = None
    driver_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    owner_user_id: Optional[int] = None
    status: Optional[OccurrenceStatus] = None

    def matches(self, occurrence: ScheduleOccurrence) -> bool:
        for field, wanted in self.model_dump(exclude_none=True).items():
            if getattr(occurrence, field) != wanted:
                return False
        return True


class OccurrenceListResponse(BaseModel):
    start_date: date
    end_date: date
    occurrences: List[ScheduleOccurrence]
    total: int
