"""
Route alert schemas.
"""

from pydantic import BaseModel
from datetime import date, datetime
from typing import Optional, Dict, Any
from transport_planner.app.models.route_alert import AlertType, AlertSeverity


class AlertResponse(BaseModel):
    id: int
    user_id: int
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: Optional[str]
    template_id: Optional[int]
    occurrence_id: Optional[str]
    route_id: Optional[int]
    alert_date: Optional[date]
    metadata_payload: Optional[Dict[str, Any]]
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime]

    class Config:
        from_attributes = True
