"""
Route template and occurrence override endpoints.
"""

from datetime import date
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from transport_planner.app.db.session import get_db
from transport_planner.app.core.guards import require_role, ALL_ROLES, PLANNERS
from transport_planner.app.models.schedule_enums import TemplateStatus
from transport_planner.app.schemas.route_template import (
    RouteTemplateCreate, RouteTemplateUpdate, RouteTemplateResponse,
    OccurrenceOverrideUpsert, OccurrenceOverrideResponse
)
from transport_planner.app.services import template_store

router = APIRouter(prefix="/templates", tags=["Templates"])


@router.post("", response_model=RouteTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: RouteTemplateCreate,
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    return await template_store.create_template(db, data, actor=current_user)


@router.get("", response_model=List[RouteTemplateResponse])
async def list_templates(
    route_id: Optional[int] = Query(None),
    status_filter: Optional[TemplateStatus] = Query(None, alias="status"),
    owner_user_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await template_store.list_templates(db, route_id, status_filter, owner_user_id, skip, limit)


@router.get("/{template_id}", response_model=RouteTemplateResponse)
async def get_template(
    template_id: int = Path(..., description="Template ID"),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await template_store.get_template(db, template_id)


@router.patch("/{template_id}", response_model=RouteTemplateResponse)
async def update_template(
    changes: RouteTemplateUpdate,
    template_id: int = Path(..., description="Template ID"),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Partially update a template.

    Send ``expected_version`` with the version you last read; a mismatch
    returns 409 and nothing is changed.
    """
    return await template_store.update_template(db, template_id, changes, actor=current_user)


@router.post("/{template_id}/cancel", response_model=RouteTemplateResponse)
async def cancel_template(
    template_id: int = Path(..., description="Template ID"),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a template. Overrides from today onwards are marked deleted."""
    return await template_store.cancel_template(db, template_id, actor=current_user)


@router.get("/{template_id}/overrides", response_model=List[OccurrenceOverrideResponse])
async def list_overrides(
    template_id: int = Path(..., description="Template ID"),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    await template_store.get_template(db, template_id)
    return await template_store.list_overrides(db, template_id)


@router.put("/{template_id}/occurrences/{schedule_date}", response_model=OccurrenceOverrideResponse)
async def upsert_override(
    changes: OccurrenceOverrideUpsert,
    template_id: int = Path(..., description="Template ID"),
    schedule_date: date = Path(..., description="Occurrence date (YYYY-MM-DD)"),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    """Override one day of a template. Only dates the template runs on are accepted."""
    return await template_store.upsert_override(db, template_id, schedule_date, changes, actor=current_user)


@router.delete("/{template_id}/occurrences/{schedule_date}", response_model=OccurrenceOverrideResponse)
async def delete_occurrence(
    template_id: int = Path(..., description="Template ID"),
    schedule_date: date = Path(..., description="Occurrence date (YYYY-MM-DD)"),
    reason: Optional[str] = Query(None, max_length=500),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    return await template_store.delete_occurrence(db, template_id, schedule_date, reason, actor=current_user)
