"""
Team collaboration service.

Route responsibility grants decide who hears about a route. Support offers
let one planner lend a driver or vehicle (or take over a run) for another
planner's template; unanswered offers expire after a fixed window.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from transport_planner.app.core.config import settings
from transport_planner.app.core.exceptions import (
    ResourceNotFoundError, ScheduleValidationError, InvalidStateError, InsufficientPermissionsError
)
from transport_planner.app.models.audit_log import AuditOperation
from transport_planner.app.models.driver import Driver
from transport_planner.app.models.fleet_route import Route
from transport_planner.app.models.fleet_vehicle import Vehicle
from transport_planner.app.models.route_alert import AlertType, AlertSeverity
from transport_planner.app.models.route_responsibility import RouteResponsibility
from transport_planner.app.models.route_template import RouteTemplate
from transport_planner.app.models.schedule_enums import TemplateStatus
from transport_planner.app.models.support_offer import SupportOffer
from transport_planner.app.models.team_enums import ResponsibilityRole, OfferStatus, OfferPriority
from transport_planner.app.models.user import User
from transport_planner.app.schemas.route_template import OccurrenceOverrideUpsert
from transport_planner.app.schemas.team import SupportOfferCreate, UserRouteResponse
from transport_planner.app.services.alert_service import AlertService
from transport_planner.app.services.audit import record_audit, snapshot
from transport_planner.app.services.materializer import template_produces
from transport_planner.app.services import template_store

logger = logging.getLogger(__name__)

OFFER_ALERT_SEVERITY = {
    OfferPriority.LOW: AlertSeverity.LOW,
    OfferPriority.MEDIUM: AlertSeverity.MEDIUM,
    OfferPriority.HIGH: AlertSeverity.HIGH,
    OfferPriority.URGENT: AlertSeverity.CRITICAL,
}


async def _get_or_404(db: AsyncSession, model, resource: str, resource_id: int):
    instance = await db.get(model, resource_id)
    if instance is None:
        raise ResourceNotFoundError(resource, resource_id)
    return instance


async def _active_user(db: AsyncSession, user_id: int) -> User:
    user = await _get_or_404(db, User, "User", user_id)
    if not user.is_active:
        raise ScheduleValidationError("User account is inactive", details={"user_id": user_id})
    return user


# Route responsibility

async def assign_responsibility(
    db: AsyncSession,
    route_id: int,
    user_id: int,
    role: ResponsibilityRole,
    assigned_by: Optional[int] = None,
    notes: Optional[str] = None,
    actor: Optional[dict] = None,
) -> RouteResponsibility:
    """
    Grant ``role`` on a route. An existing grant for the same
    (route, user, role) is reactivated and re-stamped instead of duplicated.
    """
    await _get_or_404(db, Route, "Route", route_id)
    await _active_user(db, user_id)

    result = await db.execute(
        select(RouteResponsibility).where(
            RouteResponsibility.route_id == route_id,
            RouteResponsibility.user_id == user_id,
            RouteResponsibility.role == role,
        )
    )
    grant = result.scalar_one_or_none()

    if grant is None:
        operation, before = AuditOperation.INSERT, None
        grant = RouteResponsibility(route_id=route_id, user_id=user_id, role=role)
        db.add(grant)
    else:
        operation, before = AuditOperation.UPDATE, snapshot(grant)

    grant.is_active = True
    grant.assigned_at = datetime.utcnow()
    grant.assigned_by = assigned_by
    if notes is not None:
        grant.notes = notes

    await db.commit()
    await db.refresh(grant)

    await record_audit(
        db, RouteResponsibility.__tablename__, grant.id, operation,
        before=before, after=snapshot(grant), actor=actor,
    )
    logger.info("User %s assigned %s on route %s", user_id, role.value, route_id)
    return grant


async def revoke_responsibility(
    db: AsyncSession,
    responsibility_id: int,
    actor: Optional[dict] = None,
) -> RouteResponsibility:
    grant = await _get_or_404(db, RouteResponsibility, "RouteResponsibility", responsibility_id)
    if not grant.is_active:
        return grant

    before = snapshot(grant)
    grant.is_active = False
    await db.commit()
    await db.refresh(grant)

    await record_audit(
        db, RouteResponsibility.__tablename__, grant.id, AuditOperation.UPDATE,
        before=before, after=snapshot(grant), actor=actor,
    )
    return grant


async def list_route_responsibilities(
    db: AsyncSession, route_id: int, active_only: bool = True
) -> List[RouteResponsibility]:
    query = select(RouteResponsibility).where(RouteResponsibility.route_id == route_id)
    if active_only:
        query = query.where(RouteResponsibility.is_active == True)
    result = await db.execute(query.order_by(RouteResponsibility.id))
    return result.scalars().all()


async def get_user_routes(db: AsyncSession, user_id: int) -> List[UserRouteResponse]:
    """Routes the user holds an active grant on."""
    result = await db.execute(
        select(Route.id, Route.route_code, Route.name, RouteResponsibility.role)
        .join(RouteResponsibility, RouteResponsibility.route_id == Route.id)
        .where(
            RouteResponsibility.user_id == user_id,
            RouteResponsibility.is_active == True,
        )
        .order_by(Route.route_code, Route.id)
    )
    return [
        UserRouteResponse(route_id=row[0], route_code=row[1], route_name=row[2], role=row[3])
        for row in result.all()
    ]


# Support offers

async def create_support_offer(
    db: AsyncSession,
    data: SupportOfferCreate,
    from_user_id: int,
    actor: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> SupportOffer:
    """
    Offer help on a template (or one of its days). The offer expires
    ``support_offer_expiry_hours`` after creation unless answered.
    """
    now = now or datetime.utcnow()

    template = await _get_or_404(db, RouteTemplate, "RouteTemplate", data.template_id)
    if template.status == TemplateStatus.CANCELLED:
        raise InvalidStateError("Cannot offer support on a cancelled template",
                                details={"template_id": template.id})
    if data.schedule_date is not None and not template_produces(template, data.schedule_date):
        raise ScheduleValidationError(
            "Template does not run on this date",
            details={"template_id": template.id, "schedule_date": data.schedule_date.isoformat()},
        )

    if data.to_user_id is not None:
        if data.to_user_id == from_user_id:
            raise ScheduleValidationError("Cannot address a support offer to yourself")
        await _active_user(db, data.to_user_id)
    if data.proposed_driver_id is not None:
        await _get_or_404(db, Driver, "Driver", data.proposed_driver_id)
    if data.proposed_vehicle_id is not None:
        await _get_or_404(db, Vehicle, "Vehicle", data.proposed_vehicle_id)

    offer = SupportOffer(
        **data.model_dump(),
        from_user_id=from_user_id,
        status=OfferStatus.PENDING,
        created_at=now,
        expires_at=now + timedelta(hours=settings.support_offer_expiry_hours),
    )
    db.add(offer)
    await db.flush()
    offer.offer_code = f"SOF{offer.id:06d}"

    title = f"Support offer {offer.offer_code}: {data.offer_type.value}"
    severity = OFFER_ALERT_SEVERITY[data.priority]
    links = dict(
        template_id=template.id,
        alert_date=data.schedule_date,
        metadata={"offer_id": offer.id, "from_user_id": from_user_id},
    )
    if data.to_user_id is not None:
        await AlertService.create_alert(
            db, data.to_user_id, AlertType.OFFER, title, data.message, severity,
            route_id=template.route_id, **links
        )
    else:
        key = f"offer:{offer.id}"
        await AlertService.fan_out(
            db, template.route_id, AlertType.OFFER, title, data.message, severity,
            trigger_key=key, seen={(key, from_user_id)}, **links
        )

    await db.commit()
    await db.refresh(offer)

    await record_audit(
        db, SupportOffer.__tablename__, offer.id, AuditOperation.INSERT,
        after=snapshot(offer), actor=actor,
    )
    logger.info("Support offer %s created by user %s", offer.offer_code, from_user_id)
    return offer


async def get_support_offer(db: AsyncSession, offer_id: int) -> SupportOffer:
    return await _get_or_404(db, SupportOffer, "SupportOffer", offer_id)


async def list_support_offers(
    db: AsyncSession,
    user_id: Optional[int] = None,
    status: Optional[OfferStatus] = None,
    limit: int = 100,
) -> List[SupportOffer]:
    """Offers sent or received by ``user_id`` (all offers when None)."""
    query = select(SupportOffer)
    if user_id is not None:
        query = query.where(
            (SupportOffer.from_user_id == user_id) | (SupportOffer.to_user_id == user_id)
        )
    if status is not None:
        query = query.where(SupportOffer.status == status)
    result = await db.execute(query.order_by(SupportOffer.id.desc()).limit(limit))
    return result.scalars().all()


async def respond_to_offer(
    db: AsyncSession,
    offer_id: int,
    accept: bool,
    responder_id: int,
    response_message: Optional[str] = None,
    actor: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> SupportOffer:
    """
    Accept or reject a Pending offer.

    Accepting an offer tied to a schedule date writes the proposed driver
    and vehicle into that day's override. The answer is claimed with a
    conditional update in the same transaction as the override, so of two
    concurrent responders only one gets through. The proposer is alerted
    either way.
    """
    now = now or datetime.utcnow()
    offer = await get_support_offer(db, offer_id)

    if offer.status != OfferStatus.PENDING:
        raise InvalidStateError(f"Offer is already {offer.status.value}", details={"offer_id": offer_id})
    if offer.to_user_id is not None and offer.to_user_id != responder_id:
        raise InsufficientPermissionsError("Only the addressed user can answer this offer")
    if offer.to_user_id is None and offer.from_user_id == responder_id:
        raise InsufficientPermissionsError("Cannot answer your own offer")
    if offer.expires_at <= now:
        await _expire(db, [offer], actor)
        raise InvalidStateError("Offer has expired", details={"offer_id": offer_id})

    before = snapshot(offer)
    claimed = await db.execute(
        update(SupportOffer)
        .where(SupportOffer.id == offer_id, SupportOffer.status == OfferStatus.PENDING)
        .values(
            status=OfferStatus.ACCEPTED if accept else OfferStatus.REJECTED,
            responded_at=now,
            responded_by=responder_id,
            response_message=response_message,
        )
    )
    if claimed.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Offer was already answered", details={"offer_id": offer_id})

    if accept and offer.schedule_date is not None:
        changes = {}
        if offer.proposed_driver_id is not None:
            changes["driver_id"] = offer.proposed_driver_id
        if offer.proposed_vehicle_id is not None:
            changes["vehicle_id"] = offer.proposed_vehicle_id
        if changes:
            try:
                # Commits the claim together with the override
                await template_store.upsert_override(
                    db, offer.template_id, offer.schedule_date,
                    OccurrenceOverrideUpsert(override_reason=f"Support offer {offer.offer_code}", **changes),
                    actor=actor,
                )
            except Exception:
                await db.rollback()
                raise

    await db.refresh(offer)
    await AlertService.create_alert(
        db, offer.from_user_id, AlertType.OFFER,
        title=f"Support offer {offer.offer_code} {offer.status.value.lower()}",
        message=response_message,
        severity=AlertSeverity.MEDIUM,
        template_id=offer.template_id,
        alert_date=offer.schedule_date,
        metadata={"offer_id": offer.id, "responded_by": responder_id},
    )
    await db.commit()
    await db.refresh(offer)

    await record_audit(
        db, SupportOffer.__tablename__, offer.id, AuditOperation.UPDATE,
        before=before, after=snapshot(offer), actor=actor,
    )
    logger.info("Support offer %s %s by user %s", offer.offer_code, offer.status.value, responder_id)
    return offer


async def _expire(db: AsyncSession, offers: List[SupportOffer], actor: Optional[dict]) -> int:
    """Move still-Pending offers to Expired; offers answered meanwhile are left alone."""
    befores = {o.id: snapshot(o) for o in offers}
    result = await db.execute(
        update(SupportOffer)
        .where(SupportOffer.id.in_(list(befores)), SupportOffer.status == OfferStatus.PENDING)
        .values(status=OfferStatus.EXPIRED)
    )
    await db.commit()

    for offer in offers:
        await db.refresh(offer)
        if offer.status != OfferStatus.EXPIRED:
            continue
        await record_audit(
            db, SupportOffer.__tablename__, offer.id, AuditOperation.UPDATE,
            before=befores[offer.id], after=snapshot(offer), actor=actor,
        )
    return result.rowcount


async def expire_stale_offers(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Move Pending offers past their expiry to Expired. Returns how many moved."""
    now = now or datetime.utcnow()
    result = await db.execute(
        select(SupportOffer).where(
            SupportOffer.status == OfferStatus.PENDING,
            SupportOffer.expires_at <= now,
        )
    )
    stale = result.scalars().all()
    expired = await _expire(db, stale, None) if stale else 0
    logger.info("Expired %d support offers", expired)
    return expired
