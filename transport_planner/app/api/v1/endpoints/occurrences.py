"""
Occurrence (calendar) endpoints.
"""

from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from transport_planner.app.db.session import get_db
from transport_planner.app.core.guards import require_role, ALL_ROLES
from transport_planner.app.models.schedule_enums import OccurrenceStatus
from transport_planner.app.schemas.occurrence import OccurrenceFilters, OccurrenceListResponse
from transport_planner.app.services.materializer import list_occurrences

router = APIRouter(prefix="/occurrences", tags=["Occurrences"])


@router.get("", response_model=OccurrenceListResponse)
async def get_occurrences(
    start_date: date = Query(..., description="First day of the window"),
    end_date: date = Query(..., description="Last day of the window (inclusive)"),
    route_id: Optional[int] = Query(None),
    template_id: Optional[int] = Query(None),
    driver_id: Optional[int] = Query(None),
    vehicle_id: Optional[int] = Query(None),
    owner_user_id: Optional[int] = Query(None),
    status_filter: Optional[OccurrenceStatus] = Query(None, alias="status"),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    """
    Materialized occurrences for a date window, overrides applied, ordered
    by date, departure time and route code.
    """
    filters = OccurrenceFilters(
        route_id=route_id,
        template_id=template_id,
        driver_id=driver_id,
        vehicle_id=vehicle_id,
        owner_user_id=owner_user_id,
        status=status_filter,
    )
    occurrences = await list_occurrences(db, start_date, end_date, filters)
    return OccurrenceListResponse(
        start_date=start_date,
        end_date=end_date,
        occurrences=occurrences,
        total=len(occurrences),
    )
