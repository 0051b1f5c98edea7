"""
Consolidation suggestion endpoints and suggestion tuning.
"""

from datetime import date
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from transport_planner.app.db.session import get_db
from transport_planner.app.core.guards import require_role, ALL_ROLES, PLANNERS, ADMINS
from transport_planner.app.models.analysis_enums import SuggestionStatus
from transport_planner.app.schemas.suggestion import (
    SuggestionResponse, SuggestionDecision, SuggestionListResponse,
    SuggestionSettings, SuggestionConfigUpdate
)
from transport_planner.app.services import suggestion_engine

router = APIRouter(prefix="/suggestions", tags=["Suggestions"])


@router.get("/config", response_model=SuggestionSettings)
async def get_suggestion_config(
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await suggestion_engine.load_suggestion_config(db)


@router.put("/config", response_model=SuggestionSettings)
async def update_suggestion_config(
    update: SuggestionConfigUpdate,
    current_user: dict = Depends(require_role(ADMINS)),
    db: AsyncSession = Depends(get_db)
):
    """Retune the scorer. The merged configuration must stay consistent or nothing is saved."""
    return await suggestion_engine.update_suggestion_config(db, update.values, actor=current_user)


@router.post("/generate", response_model=SuggestionListResponse)
async def generate_suggestions(
    suggestion_date: date = Query(..., description="Date to score"),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    suggestions = await suggestion_engine.suggest_consolidations(db, suggestion_date, actor=current_user)
    return SuggestionListResponse(
        suggestion_date=suggestion_date,
        suggestions=[SuggestionResponse.model_validate(s) for s in suggestions],
        total=len(suggestions),
    )


@router.get("", response_model=SuggestionListResponse)
async def list_suggestions(
    suggestion_date: date = Query(...),
    status_filter: Optional[SuggestionStatus] = Query(None, alias="status"),
    route_id: Optional[int] = Query(None, description="Source route"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    suggestions = await suggestion_engine.list_suggestions(db, suggestion_date, status_filter, route_id, limit)
    return SuggestionListResponse(
        suggestion_date=suggestion_date,
        suggestions=[SuggestionResponse.model_validate(s) for s in suggestions],
        total=len(suggestions),
    )


@router.patch("/{suggestion_id}", response_model=SuggestionResponse)
async def decide_suggestion(
    decision: SuggestionDecision,
    suggestion_id: int = Path(..., description="Suggestion ID"),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    return await suggestion_engine.decide_suggestion(db, suggestion_id, decision, actor=current_user)
