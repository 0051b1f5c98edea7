"""
Template store.

Owns route templates and their per-day overrides. Every mutation commits,
bumps the occurrence cache generation and is recorded in the audit log.
Updates are compare-and-swap on the row version.
"""

import logging
from datetime import date
from typing import Optional, Dict, Any, List

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from transport_planner.app.core.exceptions import (
    ScheduleValidationError, ResourceNotFoundError, ConcurrencyConflictError, InvalidStateError
)
from transport_planner.app.models.audit_log import AuditOperation
from transport_planner.app.models.driver import Driver
from transport_planner.app.models.fleet_route import Route
from transport_planner.app.models.fleet_vehicle import Vehicle
from transport_planner.app.models.occurrence_override import OccurrenceOverride
from transport_planner.app.models.route_alert import AlertType, AlertSeverity
from transport_planner.app.models.route_template import RouteTemplate
from transport_planner.app.models.schedule_enums import ScheduleType, TemplateStatus
from transport_planner.app.schemas.route_template import (
    RouteTemplateCreate, RouteTemplateUpdate, OccurrenceOverrideUpsert
)
from transport_planner.app.services.alert_service import AlertService
from transport_planner.app.services.audit import record_audit, snapshot
from transport_planner.app.services.cache import OccurrenceCache
from transport_planner.app.services.materializer import template_produces

logger = logging.getLogger(__name__)

CANCEL_REASON = "Template cancelled"
RECURRENCE_REASON = "Recurrence changed"

# Columns a PATCH may change but never clear
REQUIRED_TEMPLATE_FIELDS = ("schedule_name", "schedule_type", "days_of_week", "start_date", "priority", "status")
RECURRENCE_FIELDS = ("schedule_type", "days_of_week", "start_date", "end_date")


def normalize_recurrence(
    schedule_type: ScheduleType,
    days_of_week: Optional[List[int]],
    start_date: date,
    end_date: Optional[date],
) -> List[int]:
    """
    Validate a recurrence rule and return its weekdays deduplicated and sorted.

    Raises:
        ScheduleValidationError: empty or out-of-range weekdays, or end before start
    """
    days = sorted(set(days_of_week or []))
    if not days:
        raise ScheduleValidationError("days_of_week must contain at least one weekday")

    invalid = [d for d in days if not isinstance(d, int) or d < 1 or d > 7]
    if invalid:
        raise ScheduleValidationError(
            "days_of_week values must be ISO weekdays 1 (Monday) to 7 (Sunday)",
            details={"invalid": invalid},
        )

    if end_date is not None and end_date < start_date:
        raise ScheduleValidationError(
            "end_date must not be before start_date",
            details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )

    if schedule_type == ScheduleType.SINGLE and start_date.isoweekday() not in days:
        days = sorted(set(days) | {start_date.isoweekday()})
    return days


async def _require(db: AsyncSession, model, resource: str, resource_id: Optional[int]):
    if resource_id is None:
        return None
    instance = await db.get(model, resource_id)
    if instance is None:
        raise ResourceNotFoundError(resource, resource_id)
    return instance


async def _check_resources(db: AsyncSession, fields: Dict[str, Any]) -> None:
    if "route_id" in fields:
        await _require(db, Route, "Route", fields["route_id"])
    for key in ("default_driver_id", "driver_id"):
        if fields.get(key) is not None:
            await _require(db, Driver, "Driver", fields[key])
    for key in ("default_vehicle_id", "vehicle_id"):
        if fields.get(key) is not None:
            await _require(db, Vehicle, "Vehicle", fields[key])


def _actor_id(actor: Optional[dict]) -> Optional[int]:
    return actor.get("user_id") if actor else None


async def _commit_versioned(db: AsyncSession, resource: str, instance, expected_version: Optional[int]):
    instance_id = instance.id
    try:
        await db.commit()
    except StaleDataError:
        # Rollback expires the instance; only the captured id is used after this
        await db.rollback()
        raise ConcurrencyConflictError(resource, instance_id, expected_version)
    await db.refresh(instance)


async def get_template(db: AsyncSession, template_id: int) -> RouteTemplate:
    template = await db.get(RouteTemplate, template_id)
    if template is None:
        raise ResourceNotFoundError("RouteTemplate", template_id)
    return template


async def list_templates(
    db: AsyncSession,
    route_id: Optional[int] = None,
    status: Optional[TemplateStatus] = None,
    owner_user_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[RouteTemplate]:
    query = select(RouteTemplate)
    if route_id is not None:
        query = query.where(RouteTemplate.route_id == route_id)
    if status is not None:
        query = query.where(RouteTemplate.status == status)
    if owner_user_id is not None:
        query = query.where(RouteTemplate.owner_user_id == owner_user_id)
    query = query.order_by(RouteTemplate.id).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


async def create_template(
    db: AsyncSession,
    data: RouteTemplateCreate,
    actor: Optional[dict] = None,
) -> RouteTemplate:
    fields = data.model_dump()
    fields["days_of_week"] = normalize_recurrence(
        data.schedule_type, data.days_of_week, data.start_date, data.end_date
    )
    await _check_resources(db, fields)

    template = RouteTemplate(**fields, created_by=_actor_id(actor))
    db.add(template)
    await db.commit()
    await db.refresh(template)

    await OccurrenceCache.invalidate()
    await record_audit(
        db, RouteTemplate.__tablename__, template.id, AuditOperation.INSERT,
        after=snapshot(template), actor=actor,
    )
    logger.info("Created template %s for route %s", template.id, template.route_id)
    return template


async def _cascade_cancel(db: AsyncSession, template: RouteTemplate, today: date) -> int:
    """Mark overrides dated today or later deleted; earlier ones stay as history."""
    # The template UPDATE is left for _commit_versioned so a stale version surfaces there
    with db.no_autoflush:
        result = await db.execute(
            select(OccurrenceOverride).where(
                OccurrenceOverride.template_id == template.id,
                OccurrenceOverride.schedule_date >= today,
                OccurrenceOverride.is_deleted == False,
            )
        )
    overrides = result.scalars().all()
    for override in overrides:
        override.is_deleted = True
        override.override_reason = CANCEL_REASON
    return len(overrides)


async def _reconcile_overrides(db: AsyncSession, template: RouteTemplate) -> int:
    """
    Align overrides with a changed recurrence. Live overrides on dates the
    template no longer yields are marked deleted; rows retired that way whose
    date is yielded again are removed, so the day comes back with the
    template defaults instead of the old assignment.
    """
    with db.no_autoflush:
        result = await db.execute(
            select(OccurrenceOverride).where(
                OccurrenceOverride.template_id == template.id,
                or_(
                    OccurrenceOverride.is_deleted == False,
                    OccurrenceOverride.override_reason == RECURRENCE_REASON,
                ),
            )
        )
    retired = 0
    for override in result.scalars().all():
        produced = template_produces(template, override.schedule_date)
        if not override.is_deleted and not produced:
            override.is_deleted = True
            override.override_reason = RECURRENCE_REASON
            retired += 1
        elif override.is_deleted and produced:
            await db.delete(override)
    if retired:
        logger.info("Template %s recurrence change retired %d overrides", template.id, retired)
    return retired


async def update_template(
    db: AsyncSession,
    template_id: int,
    changes: RouteTemplateUpdate,
    actor: Optional[dict] = None,
    today: Optional[date] = None,
) -> RouteTemplate:
    """
    Partially update a template.

    Raises:
        InvalidStateError: template is Cancelled
        ConcurrencyConflictError: ``expected_version`` is stale or a concurrent
            writer got there first; nothing is written
        ScheduleValidationError: merged recurrence is invalid
    """
    template = await get_template(db, template_id)
    if template.status == TemplateStatus.CANCELLED:
        raise InvalidStateError(
            "Cancelled templates cannot be edited", details={"template_id": template_id}
        )

    expected = changes.expected_version
    if expected is not None and expected != template.version:
        raise ConcurrencyConflictError("RouteTemplate", template_id, expected, template.version)

    updates = changes.model_dump(exclude_unset=True, exclude={"expected_version"})
    if not updates:
        return template

    cleared = sorted(f for f in REQUIRED_TEMPLATE_FIELDS if f in updates and updates[f] is None)
    if cleared:
        raise ScheduleValidationError("Required fields cannot be set to null", details={"fields": cleared})

    merged_days = normalize_recurrence(
        updates.get("schedule_type") or template.schedule_type,
        updates.get("days_of_week", template.days_of_week),
        updates.get("start_date") or template.start_date,
        updates["end_date"] if "end_date" in updates else template.end_date,
    )
    if "days_of_week" in updates:
        updates["days_of_week"] = merged_days
    await _check_resources(db, updates)

    before = snapshot(template)
    for field, value in updates.items():
        setattr(template, field, value)

    cancelled = updates.get("status") == TemplateStatus.CANCELLED
    if cancelled:
        await _cascade_cancel(db, template, today or date.today())
    elif any(f in updates for f in RECURRENCE_FIELDS):
        await _reconcile_overrides(db, template)

    await _commit_versioned(db, "RouteTemplate", template, expected)
    await OccurrenceCache.invalidate()

    after = snapshot(template)
    await record_audit(
        db, RouteTemplate.__tablename__, template.id, AuditOperation.UPDATE,
        before=before, after=after, actor=actor,
    )

    alert_type = AlertType.CANCELLATION if cancelled else AlertType.CHANGE
    await _notify(db, template, alert_type, sorted(updates))
    logger.info("Updated template %s fields=%s", template.id, sorted(updates))
    return template


async def cancel_template(
    db: AsyncSession,
    template_id: int,
    actor: Optional[dict] = None,
    today: Optional[date] = None,
) -> RouteTemplate:
    """Cancel a template. Already-cancelled templates are returned unchanged."""
    template = await get_template(db, template_id)
    if template.status == TemplateStatus.CANCELLED:
        return template

    before = snapshot(template)
    template.status = TemplateStatus.CANCELLED
    cascaded = await _cascade_cancel(db, template, today or date.today())

    await _commit_versioned(db, "RouteTemplate", template, None)
    await OccurrenceCache.invalidate()

    await record_audit(
        db, RouteTemplate.__tablename__, template.id, AuditOperation.UPDATE,
        before=before, after=snapshot(template), actor=actor,
    )
    await _notify(db, template, AlertType.CANCELLATION, ["status"])
    logger.info("Cancelled template %s (%d future overrides marked deleted)", template.id, cascaded)
    return template


async def _notify(db: AsyncSession, template: RouteTemplate, alert_type: AlertType, fields: List[str]) -> None:
    if alert_type == AlertType.CANCELLATION:
        title = f"Schedule cancelled: {template.schedule_name}"
        message = "The template no longer produces occurrences."
        severity = AlertSeverity.HIGH
    else:
        title = f"Schedule changed: {template.schedule_name}"
        message = f"Updated fields: {', '.join(fields)}"
        severity = AlertSeverity.MEDIUM

    created = await AlertService.fan_out(
        db, template.route_id, alert_type, title, message, severity,
        trigger_key=f"template:{template.id}:v{template.version}",
        template_id=template.id,
        metadata={"fields": fields, "version": template.version},
    )
    await db.commit()
    logger.debug("Sent %d %s alerts for template %s", created, alert_type.value, template.id)


async def get_override(db: AsyncSession, template_id: int, schedule_date: date) -> Optional[OccurrenceOverride]:
    result = await db.execute(
        select(OccurrenceOverride).where(
            OccurrenceOverride.template_id == template_id,
            OccurrenceOverride.schedule_date == schedule_date,
        )
    )
    return result.scalar_one_or_none()


async def list_overrides(db: AsyncSession, template_id: int) -> List[OccurrenceOverride]:
    result = await db.execute(
        select(OccurrenceOverride)
        .where(OccurrenceOverride.template_id == template_id)
        .order_by(OccurrenceOverride.schedule_date)
    )
    return result.scalars().all()


async def _load_for_occurrence(db: AsyncSession, template_id: int, schedule_date: date) -> RouteTemplate:
    template = await get_template(db, template_id)
    if template.status == TemplateStatus.CANCELLED:
        raise InvalidStateError(
            "Cancelled templates cannot be edited", details={"template_id": template_id}
        )
    if not template_produces(template, schedule_date):
        raise ScheduleValidationError(
            "Template does not run on this date",
            details={"template_id": template_id, "schedule_date": schedule_date.isoformat()},
        )
    return template


async def _save_override(
    db: AsyncSession,
    template_id: int,
    schedule_date: date,
    updates: Dict[str, Any],
    expected_version: Optional[int],
    actor: Optional[dict],
) -> OccurrenceOverride:
    override = await get_override(db, template_id, schedule_date)

    if override is None:
        if expected_version is not None:
            raise ConcurrencyConflictError("OccurrenceOverride", f"{template_id}:{schedule_date}", expected_version)
        operation = AuditOperation.INSERT
        before = None
        override = OccurrenceOverride(
            template_id=template_id,
            schedule_date=schedule_date,
            created_by=_actor_id(actor),
            **updates,
        )
        db.add(override)
    else:
        if expected_version is not None and expected_version != override.version:
            raise ConcurrencyConflictError("OccurrenceOverride", override.id, expected_version, override.version)
        operation = AuditOperation.UPDATE
        before = snapshot(override)
        for field, value in updates.items():
            setattr(override, field, value)

    try:
        await db.commit()
    except (StaleDataError, IntegrityError):
        # Another writer created or changed the same day first
        await db.rollback()
        raise ConcurrencyConflictError("OccurrenceOverride", f"{template_id}:{schedule_date}", expected_version)
    await db.refresh(override)
    await OccurrenceCache.invalidate()

    await record_audit(
        db, OccurrenceOverride.__tablename__, override.id, operation,
        before=before, after=snapshot(override), actor=actor,
    )
    return override


async def upsert_override(
    db: AsyncSession,
    template_id: int,
    schedule_date: date,
    changes: OccurrenceOverrideUpsert,
    actor: Optional[dict] = None,
) -> OccurrenceOverride:
    """
    Create or update the override for one produced day. Upserting a deleted
    day restores it.
    """
    await _load_for_occurrence(db, template_id, schedule_date)

    updates = changes.model_dump(exclude_unset=True, exclude={"expected_version"})
    await _check_resources(db, updates)
    updates["is_deleted"] = False

    override = await _save_override(db, template_id, schedule_date, updates, changes.expected_version, actor)
    logger.info("Saved override for template %s on %s", template_id, schedule_date)
    return override


async def delete_occurrence(
    db: AsyncSession,
    template_id: int,
    schedule_date: date,
    reason: Optional[str] = None,
    actor: Optional[dict] = None,
) -> OccurrenceOverride:
    """Remove one day from the schedule by marking its override deleted."""
    await _load_for_occurrence(db, template_id, schedule_date)

    existing = await get_override(db, template_id, schedule_date)
    if existing is not None and existing.is_deleted:
        return existing

    updates: Dict[str, Any] = {"is_deleted": True}
    if reason:
        updates["override_reason"] = reason

    override = await _save_override(db, template_id, schedule_date, updates, None, actor)
    logger.info("Deleted occurrence of template %s on %s", template_id, schedule_date)
    return override
