"""
Admin Operations API Endpoints.

Batch passes, dead letter queue handling and maintenance sweeps.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from transport_planner.app.db.session import get_db
from transport_planner.app.models.dlq import DLQStatus
from transport_planner.app.core.guards import require_role, ADMINS
from transport_planner.app.schemas.ops import DailyPassRequest, DailyPassResult, DLQItemResponse
from transport_planner.app.services import batch_runner
from transport_planner.app.services.alert_service import AlertService
from transport_planner.app.services.cache import OccurrenceCache
from transport_planner.app.services.team import expire_stale_offers

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/daily-pass", response_model=DailyPassResult)
async def run_daily_pass(
    req: DailyPassRequest,
    current_user: dict = Depends(require_role(ADMINS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Run conflict detection and/or suggestion generation for a date range.
    Failed dates are parked in the DLQ; the others still complete.
    """
    dates = batch_runner.date_range(req.start_date, req.end_date)
    return await batch_runner.run_daily_pass(
        db, dates, run_detection=req.run_detection, run_suggestions=req.run_suggestions
    )


@router.get("/dlq", response_model=List[DLQItemResponse])
async def list_dlq_items(
    status_filter: Optional[DLQStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(ADMINS)),
    db: AsyncSession = Depends(get_db)
):
    return await batch_runner.list_dlq(db, status_filter, limit)


@router.post("/dlq/{dlq_id}/retry", response_model=DLQItemResponse)
async def retry_dlq_item(
    dlq_id: int = Path(..., description="DLQ Item ID"),
    current_user: dict = Depends(require_role(ADMINS)),
    db: AsyncSession = Depends(get_db)
):
    """Re-run a failed task for its recorded date."""
    return await batch_runner.retry_dlq_item(db, dlq_id)


@router.post("/expire-offers")
async def trigger_offer_expiry(
    current_user: dict = Depends(require_role(ADMINS)),
    db: AsyncSession = Depends(get_db)
):
    """Move unanswered support offers past their deadline to Expired."""
    count = await expire_stale_offers(db, datetime.utcnow())
    return {"message": "Offer expiry sweep completed", "offers_expired": count}


@router.post("/reminders")
async def trigger_departure_reminders(
    current_user: dict = Depends(require_role(ADMINS)),
    db: AsyncSession = Depends(get_db)
):
    count = await AlertService.emit_departure_reminders(db)
    await db.commit()
    return {"message": "Reminders sent", "reminders_sent": count}


@router.post("/clear-cache")
async def clear_occurrence_cache(
    current_user: dict = Depends(require_role(ADMINS))
):
    """Drop all memoized occurrence windows."""
    await OccurrenceCache.invalidate()
    return {"message": "Cache cleared successfully"}
