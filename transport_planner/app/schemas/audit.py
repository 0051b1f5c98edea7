"""
Audit trail schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, Dict, Any, List
from transport_planner.app.models.audit_log import AuditOperation


class AuditLogResponse(BaseModel):
    id: int
    table_name: str
    record_id: str
    operation: AuditOperation
    old_values: Optional[Dict[str, Any]]
    new_values: Optional[Dict[str, Any]]
    changed_fields: Optional[List[str]]
    user_id: Optional[int]
    user_email: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int
