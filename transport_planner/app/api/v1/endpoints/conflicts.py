"""
Conflict detection endpoints.
"""

from datetime import date
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from transport_planner.app.db.session import get_db
from transport_planner.app.core.guards import require_role, ALL_ROLES, PLANNERS
from transport_planner.app.models.analysis_enums import ConflictStatus
from transport_planner.app.schemas.conflict import ConflictResponse, ConflictResolution
from transport_planner.app.services import conflict_detector

router = APIRouter(prefix="/conflicts", tags=["Conflicts"])


@router.post("/detect", response_model=List[ConflictResponse])
async def detect_conflicts(
    check_date: date = Query(..., description="Date to scan"),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    """Recompute conflicts for a date; earlier results for it are replaced."""
    return await conflict_detector.detect_conflicts(db, check_date, actor=current_user)


@router.get("", response_model=List[ConflictResponse])
async def list_conflicts(
    check_date: Optional[date] = Query(None),
    status_filter: Optional[ConflictStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await conflict_detector.list_conflicts(db, check_date, status_filter, limit)


@router.patch("/{conflict_id}", response_model=ConflictResponse)
async def resolve_conflict(
    resolution: ConflictResolution,
    conflict_id: int = Path(..., description="Conflict ID"),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    return await conflict_detector.resolve_conflict(db, conflict_id, resolution, actor=current_user)
