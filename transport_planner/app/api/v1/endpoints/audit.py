"""
Audit trail endpoint (admin-only).
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from transport_planner.app.db.session import get_db
from transport_planner.app.core.guards import require_role, ADMINS
from transport_planner.app.models.audit_log import AuditOperation
from transport_planner.app.schemas.audit import AuditTrailResponse, AuditLogResponse
from transport_planner.app.services.audit import get_audit_trail

router = APIRouter(prefix="/admin/audit", tags=["Admin - Audit"])


@router.get("", response_model=AuditTrailResponse)
async def get_audit_logs(
    table_name: Optional[str] = Query(None, description="Filter by table, e.g. route_templates"),
    record_id: Optional[str] = Query(None, description="Filter by record id"),
    operation: Optional[AuditOperation] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(require_role(ADMINS)),
    db: AsyncSession = Depends(get_db)
):
    """Audit trail, most recent first."""
    logs = await get_audit_trail(
        db=db,
        table_name=table_name,
        record_id=record_id,
        operation=operation,
        limit=limit
    )

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
