"""
Team collaboration endpoints: route responsibility and support offers.
"""

from fastapi import APIRouter, Depends, status, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from transport_planner.app.db.session import get_db
from transport_planner.app.core.dependencies import get_current_user
from transport_planner.app.core.guards import require_role, ALL_ROLES, PLANNERS
from transport_planner.app.models.team_enums import OfferStatus
from transport_planner.app.schemas.team import (
    ResponsibilityAssign, ResponsibilityResponse, UserRouteResponse,
    SupportOfferCreate, SupportOfferResponse, SupportOfferReply
)
from transport_planner.app.services import team

responsibility_router = APIRouter(prefix="/responsibilities", tags=["Team - Responsibilities"])
offer_router = APIRouter(prefix="/support-offers", tags=["Team - Support Offers"])


@responsibility_router.post("", response_model=ResponsibilityResponse, status_code=status.HTTP_201_CREATED)
async def assign_responsibility(
    data: ResponsibilityAssign,
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    """Grant a role on a route. Re-assigning an existing grant reactivates it."""
    return await team.assign_responsibility(
        db, data.route_id, data.user_id, data.role,
        assigned_by=current_user["user_id"], notes=data.notes, actor=current_user
    )


@responsibility_router.delete("/{responsibility_id}", response_model=ResponsibilityResponse)
async def revoke_responsibility(
    responsibility_id: int = Path(...),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    return await team.revoke_responsibility(db, responsibility_id, actor=current_user)


@responsibility_router.get("/routes/{route_id}", response_model=List[ResponsibilityResponse])
async def list_route_responsibilities(
    route_id: int = Path(...),
    active_only: bool = Query(True),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await team.list_route_responsibilities(db, route_id, active_only)


@responsibility_router.get("/me", response_model=List[UserRouteResponse])
async def my_routes(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Routes the current user is responsible for."""
    return await team.get_user_routes(db, current_user["user_id"])


@offer_router.post("", response_model=SupportOfferResponse, status_code=status.HTTP_201_CREATED)
async def create_support_offer(
    data: SupportOfferCreate,
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    """Offer help on a template. Unanswered offers expire after 24 hours."""
    return await team.create_support_offer(db, data, current_user["user_id"], actor=current_user)


@offer_router.get("", response_model=List[SupportOfferResponse])
async def list_my_offers(
    status_filter: Optional[OfferStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Offers the current user sent or received."""
    return await team.list_support_offers(db, current_user["user_id"], status_filter, limit)


@offer_router.get("/{offer_id}", response_model=SupportOfferResponse)
async def get_support_offer(
    offer_id: int = Path(...),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await team.get_support_offer(db, offer_id)


@offer_router.post("/{offer_id}/respond", response_model=SupportOfferResponse)
async def respond_to_offer(
    reply: SupportOfferReply,
    offer_id: int = Path(...),
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    return await team.respond_to_offer(
        db, offer_id, reply.accept, current_user["user_id"],
        response_message=reply.response_message, actor=current_user
    )
