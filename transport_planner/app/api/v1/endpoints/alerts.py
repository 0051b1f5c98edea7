"""
Route alert endpoints for the current user.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from transport_planner.app.db.session import get_db
from transport_planner.app.core.dependencies import get_current_user
from transport_planner.app.services.alert_service import AlertService
from transport_planner.app.schemas.alert import AlertResponse

router = APIRouter(prefix="/alerts", tags=["Alerts"])


@router.get("", response_model=List[AlertResponse])
async def list_alerts(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List current user's alerts, newest first."""
    return await AlertService.list_for_user(db, current_user["user_id"], unread_only, limit)


@router.patch("/read-all")
async def mark_all_alerts_read(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark all alerts as read."""
    count = await AlertService.mark_all_read(db, current_user["user_id"])
    await db.commit()
    return {"status": "success", "count": count}


@router.patch("/{alert_id}/read")
async def mark_alert_read(
    alert_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark a specific alert as read."""
    success = await AlertService.mark_read(db, alert_id, current_user["user_id"])
    if not success:
        raise HTTPException(status_code=404, detail="Alert not found")

    await db.commit()
    return {"status": "success"}
