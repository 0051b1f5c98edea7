"""
Conflict check schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List
from transport_planner.app.models.analysis_enums import ConflictType, ConflictSeverity, ConflictStatus


class ConflictResponse(BaseModel):
    id: int
    check_date: date
    driver_id: Optional[int]
    vehicle_id: Optional[int]
    conflicting_occurrences: List[str]
    conflict_type: ConflictType
    severity: ConflictSeverity
    status: ConflictStatus
    resolution_notes: Optional[str]
    created_at: datetime
    resolved_at: Optional[datetime]

    class Config:
        from_attributes = True


class ConflictResolution(BaseModel):
    status: ConflictStatus
    resolution_notes: Optional[str] = Field(None, max_length=2000)
