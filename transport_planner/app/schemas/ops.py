"""
Batch operation schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional, Dict, Any
from transport_planner.app.models.dlq import DLQStatus


class DailyPassRequest(BaseModel):
    start_date: date
    end_date: Optional[date] = None
    run_detection: bool = True
    run_suggestions: bool = True


class PassFailure(BaseModel):
    task_name: str
    target_date: date
    error: str
    dlq_id: Optional[int] = None


class DailyPassResult(BaseModel):
    dates_processed: List[date] = Field(default_factory=list)
    conflicts_found: int = 0
    suggestions_found: int = 0
    failures: List[PassFailure] = Field(default_factory=list)


class DLQItemResponse(BaseModel):
    id: int
    task_name: str
    error_message: str
    payload: Optional[Dict[str, Any]]
    status: DLQStatus
    retry_count: int
    created_at: datetime
    last_retry_at: Optional[datetime]

    class Config:
        from_attributes = True
