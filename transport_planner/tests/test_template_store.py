"""
Template store tests.

Validation, compare-and-swap updates, cancellation cascade and overrides.
"""

import pytest
from datetime import date, time
from sqlalchemy import select

from transport_planner.app.core.exceptions import (
    ScheduleValidationError, ConcurrencyConflictError, InvalidStateError, ResourceNotFoundError
)
from transport_planner.app.models.audit_log import AuditLog, AuditOperation
from transport_planner.app.models.route_alert import RouteAlert, AlertType
from transport_planner.app.models.schedule_enums import ScheduleType, TemplateStatus
from transport_planner.app.schemas.route_template import (
    RouteTemplateCreate, RouteTemplateUpdate, OccurrenceOverrideUpsert
)
from transport_planner.app.services import template_store
from transport_planner.app.services.materializer import list_occurrences

MONDAY = date(2025, 3, 3)


def _create(route_id, **kwargs):
    kwargs.setdefault("schedule_name", "Morning run")
    kwargs.setdefault("start_date", MONDAY)
    kwargs.setdefault("status", TemplateStatus.CONFIRMED)
    return RouteTemplateCreate(route_id=route_id, **kwargs)


@pytest.mark.parametrize("days", [[], [0], [8], [1, 9]])
def test_recurrence_rejects_bad_weekdays(days):
    with pytest.raises(ScheduleValidationError):
        template_store.normalize_recurrence(ScheduleType.RECURRING, days, MONDAY, None)


def test_recurrence_rejects_end_before_start():
    with pytest.raises(ScheduleValidationError):
        template_store.normalize_recurrence(ScheduleType.RECURRING, [1], MONDAY, date(2025, 3, 1))


def test_recurrence_sorts_and_deduplicates():
    days = template_store.normalize_recurrence(ScheduleType.RECURRING, [5, 1, 3, 1], MONDAY, None)
    assert days == [1, 3, 5]


@pytest.mark.asyncio
async def test_create_template_records_insert_audit(db_session, make_route, actor):
    route = await make_route("RTE-A")
    template = await template_store.create_template(db_session, _create(route.id, days_of_week=[3, 1]), actor)

    assert template.version == 1
    assert template.days_of_week == [1, 3]
    assert template.created_by == actor["user_id"]

    result = await db_session.execute(
        select(AuditLog).where(AuditLog.table_name == "route_templates", AuditLog.record_id == str(template.id))
    )
    audit = result.scalar_one()
    assert audit.operation == AuditOperation.INSERT
    assert audit.old_values is None
    assert audit.new_values["schedule_name"] == "Morning run"
    assert audit.user_id == actor["user_id"]


@pytest.mark.asyncio
async def test_create_template_unknown_route(db_session, users, actor):
    with pytest.raises(ResourceNotFoundError):
        await template_store.create_template(db_session, _create(9999), actor)


@pytest.mark.asyncio
async def test_create_template_unknown_driver(db_session, make_route, actor):
    route = await make_route("RTE-A")
    with pytest.raises(ResourceNotFoundError):
        await template_store.create_template(db_session, _create(route.id, default_driver_id=4242), actor)


@pytest.mark.asyncio
async def test_update_bumps_version_and_audits_changed_fields(db_session, make_route, make_template, actor):
    route = await make_route("RTE-A")
    template = await make_template(route)

    updated = await template_store.update_template(
        db_session, template.id,
        RouteTemplateUpdate(departure_time=time(9, 0), expected_version=1),
        actor,
    )
    assert updated.version == 2
    assert updated.departure_time == time(9, 0)

    result = await db_session.execute(
        select(AuditLog).where(AuditLog.operation == AuditOperation.UPDATE)
    )
    audit = result.scalar_one()
    assert "departure_time" in audit.changed_fields
    assert "version" in audit.changed_fields
    assert audit.old_values["departure_time"] == "08:00:00"
    assert audit.new_values["departure_time"] == "09:00:00"


@pytest.mark.asyncio
async def test_update_with_stale_version_writes_nothing(db_session, make_route, make_template, actor):
    route = await make_route("RTE-A")
    template = await make_template(route)

    with pytest.raises(ConcurrencyConflictError) as exc_info:
        await template_store.update_template(
            db_session, template.id,
            RouteTemplateUpdate(schedule_name="Renamed", expected_version=7),
            actor,
        )
    assert exc_info.value.status_code == 409

    await db_session.refresh(template)
    assert template.schedule_name != "Renamed"
    assert template.version == 1


@pytest.mark.asyncio
async def test_concurrent_writer_loses(db_session, other_session, make_route, make_template, actor):
    """The second of two writers that read the same version gets a conflict."""
    route = await make_route("RTE-A")
    template = await make_template(route)
    # The losing writer's rollback expires every instance in db_session
    template_id = template.id
    stale = await template_store.get_template(db_session, template_id)
    assert stale.version == 1

    await template_store.update_template(
        other_session, template_id, RouteTemplateUpdate(schedule_name="First writer"), actor
    )

    with pytest.raises(ConcurrencyConflictError):
        await template_store.update_template(
            db_session, template_id, RouteTemplateUpdate(schedule_name="Second writer"), actor
        )

    fresh = await template_store.get_template(other_session, template_id)
    await other_session.refresh(fresh)
    assert fresh.schedule_name == "First writer"
    assert fresh.version == 2


@pytest.mark.asyncio
async def test_update_rejects_nulls_on_required_fields(db_session, make_route, make_template, actor):
    route = await make_route("RTE-A")
    template = await make_template(route, schedule_name="Kept")

    with pytest.raises(ScheduleValidationError) as exc_info:
        await template_store.update_template(
            db_session, template.id, RouteTemplateUpdate(schedule_name=None, status=None), actor
        )
    assert exc_info.value.status_code == 422
    assert exc_info.value.details["fields"] == ["schedule_name", "status"]

    await db_session.refresh(template)
    assert template.schedule_name == "Kept"
    assert template.version == 1


@pytest.mark.asyncio
async def test_narrowed_recurrence_retires_orphaned_overrides(
    db_session, make_route, make_template, make_driver, actor
):
    route = await make_route("RTE-A")
    template = await make_template(route, start_date=MONDAY)
    template_id = template.id
    driver = await make_driver("Relief")

    await template_store.upsert_override(
        db_session, template_id, MONDAY, OccurrenceOverrideUpsert(driver_id=driver.id), actor
    )
    tuesday = await template_store.upsert_override(
        db_session, template_id, date(2025, 3, 4), OccurrenceOverrideUpsert(driver_id=driver.id), actor
    )

    await template_store.update_template(db_session, template_id, RouteTemplateUpdate(days_of_week=[2, 3]), actor)

    monday = await template_store.get_override(db_session, template_id, MONDAY)
    assert monday.is_deleted is True
    assert monday.override_reason == template_store.RECURRENCE_REASON
    assert tuesday.is_deleted is False

    # Bringing Monday back does not revive the old assignment
    await template_store.update_template(
        db_session, template_id, RouteTemplateUpdate(days_of_week=[1, 2, 3]), actor
    )
    occurrences = await list_occurrences(db_session, MONDAY, MONDAY, use_cache=False)
    assert [o.driver_id for o in occurrences] == [None]
    assert await template_store.get_override(db_session, template_id, MONDAY) is None


@pytest.mark.asyncio
async def test_update_rejects_invalid_merged_recurrence(db_session, make_route, make_template, actor):
    route = await make_route("RTE-A")
    template = await make_template(route, start_date=MONDAY)

    with pytest.raises(ScheduleValidationError):
        await template_store.update_template(
            db_session, template.id, RouteTemplateUpdate(end_date=date(2025, 3, 1)), actor
        )


@pytest.mark.asyncio
async def test_cancelled_template_cannot_be_edited(db_session, make_route, make_template, actor):
    route = await make_route("RTE-A")
    template = await make_template(route, status=TemplateStatus.CANCELLED)

    with pytest.raises(InvalidStateError):
        await template_store.update_template(
            db_session, template.id, RouteTemplateUpdate(schedule_name="Revived"), actor
        )


@pytest.mark.asyncio
async def test_update_sends_change_alert_to_responsible_users(
    db_session, users, make_route, make_template, make_responsibility, actor
):
    route = await make_route("RTE-A")
    template = await make_template(route)
    await make_responsibility(route, users["planner2"])
    await make_responsibility(route, users["viewer"], is_active=False)

    await template_store.update_template(db_session, template.id, RouteTemplateUpdate(priority=3), actor)

    result = await db_session.execute(select(RouteAlert))
    alerts = result.scalars().all()
    assert [(a.user_id, a.alert_type) for a in alerts] == [(users["planner2"].id, AlertType.CHANGE)]
    assert alerts[0].template_id == template.id


@pytest.mark.asyncio
async def test_cancel_cascades_to_future_overrides_only(
    db_session, users, make_route, make_template, make_driver, make_responsibility, actor
):
    route = await make_route("RTE-A")
    template = await make_template(route, start_date=MONDAY)
    driver = await make_driver("Relief")
    await make_responsibility(route, users["planner2"])

    past = await template_store.upsert_override(
        db_session, template.id, MONDAY, OccurrenceOverrideUpsert(driver_id=driver.id), actor
    )
    future = await template_store.upsert_override(
        db_session, template.id, date(2025, 3, 10), OccurrenceOverrideUpsert(driver_id=driver.id), actor
    )

    cancelled = await template_store.cancel_template(db_session, template.id, actor, today=date(2025, 3, 5))
    assert cancelled.status == TemplateStatus.CANCELLED

    await db_session.refresh(past)
    await db_session.refresh(future)
    assert past.is_deleted is False
    assert future.is_deleted is True
    assert future.override_reason == "Template cancelled"

    occurrences = await list_occurrences(db_session, MONDAY, date(2025, 3, 16))
    assert occurrences == []

    result = await db_session.execute(
        select(RouteAlert).where(RouteAlert.alert_type == AlertType.CANCELLATION)
    )
    assert [a.user_id for a in result.scalars().all()] == [users["planner2"].id]

    # Cancelling again is a no-op
    again = await template_store.cancel_template(db_session, template.id, actor)
    assert again.version == cancelled.version


@pytest.mark.asyncio
async def test_override_only_on_produced_dates(db_session, make_route, make_template, make_driver, actor):
    route = await make_route("RTE-A")
    template = await make_template(route, days_of_week=[1], start_date=MONDAY)
    driver = await make_driver("Relief")

    with pytest.raises(ScheduleValidationError):
        await template_store.upsert_override(
            db_session, template.id, date(2025, 3, 4), OccurrenceOverrideUpsert(driver_id=driver.id), actor
        )
    assert await template_store.list_overrides(db_session, template.id) == []


@pytest.mark.asyncio
async def test_upsert_override_changes_materialized_day(
    db_session, make_route, make_template, make_driver, actor
):
    route = await make_route("RTE-A")
    regular = await make_driver("Regular")
    relief = await make_driver("Relief")
    template = await make_template(route, start_date=MONDAY, default_driver_id=regular.id)

    override = await template_store.upsert_override(
        db_session, template.id, MONDAY,
        OccurrenceOverrideUpsert(driver_id=relief.id, departure_time=time(8, 45)),
        actor,
    )
    assert override.version == 1

    again = await template_store.upsert_override(
        db_session, template.id, MONDAY,
        OccurrenceOverrideUpsert(notes="Regular driver on leave", expected_version=1),
        actor,
    )
    assert again.id == override.id
    assert again.version == 2
    assert again.driver_id == relief.id

    monday, tuesday = await list_occurrences(db_session, MONDAY, date(2025, 3, 4))
    assert monday.driver_id == relief.id
    assert monday.departure_time == time(8, 45)
    assert tuesday.driver_id == regular.id


@pytest.mark.asyncio
async def test_override_stale_version(db_session, make_route, make_template, make_driver, actor):
    route = await make_route("RTE-A")
    template = await make_template(route, start_date=MONDAY)
    driver = await make_driver("Relief")
    await template_store.upsert_override(
        db_session, template.id, MONDAY, OccurrenceOverrideUpsert(driver_id=driver.id), actor
    )

    with pytest.raises(ConcurrencyConflictError):
        await template_store.upsert_override(
            db_session, template.id, MONDAY, OccurrenceOverrideUpsert(notes="late", expected_version=5), actor
        )


@pytest.mark.asyncio
async def test_delete_and_restore_occurrence(db_session, make_route, make_template, actor):
    route = await make_route("RTE-A")
    template = await make_template(route, start_date=MONDAY)

    deleted = await template_store.delete_occurrence(db_session, template.id, MONDAY, reason="Public holiday", actor=actor)
    assert deleted.is_deleted is True
    assert deleted.override_reason == "Public holiday"

    occurrences = await list_occurrences(db_session, MONDAY, date(2025, 3, 4))
    assert [o.schedule_date for o in occurrences] == [date(2025, 3, 4)]

    restored = await template_store.upsert_override(
        db_session, template.id, MONDAY, OccurrenceOverrideUpsert(departure_time=time(10, 0)), actor
    )
    assert restored.is_deleted is False

    occurrences = await list_occurrences(db_session, MONDAY, MONDAY)
    assert occurrences[0].departure_time == time(10, 0)
