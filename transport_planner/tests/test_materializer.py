"""
Instance materializer tests.

Covers recurrence expansion, override merging and the occurrence cache.
"""

import pytest
from datetime import date, time, timedelta

from transport_planner.app.core.exceptions import ScheduleValidationError
from transport_planner.app.models.fleet_route import Route
from transport_planner.app.models.occurrence_override import OccurrenceOverride
from transport_planner.app.models.route_template import RouteTemplate
from transport_planner.app.models.schedule_enums import ScheduleType, TemplateStatus, OccurrenceStatus
from transport_planner.app.schemas.occurrence import OccurrenceFilters
from transport_planner.app.schemas.route_template import RouteTemplateUpdate
from transport_planner.app.services.cache import GENERATION_KEY
from transport_planner.app.services import materializer
from transport_planner.app.services.materializer import expand_template, list_occurrences
from transport_planner.app.services import template_store

MONDAY = date(2025, 3, 3)


def _route(**kwargs):
    kwargs.setdefault("id", 1)
    kwargs.setdefault("route_code", "RTE000001")
    kwargs.setdefault("name", "Warehouse run")
    kwargs.setdefault("estimated_duration_minutes", 60)
    return Route(**kwargs)


def _template(**kwargs):
    kwargs.setdefault("id", 10)
    kwargs.setdefault("route_id", 1)
    kwargs.setdefault("schedule_name", "Weekday run")
    kwargs.setdefault("schedule_type", ScheduleType.RECURRING)
    kwargs.setdefault("days_of_week", [1, 2, 3, 4, 5, 6, 7])
    kwargs.setdefault("start_date", MONDAY)
    kwargs.setdefault("end_date", None)
    kwargs.setdefault("standby_time", time(7, 30))
    kwargs.setdefault("departure_time", time(8, 0))
    kwargs.setdefault("default_driver_id", 5)
    kwargs.setdefault("default_vehicle_id", 7)
    kwargs.setdefault("owner_user_id", 3)
    kwargs.setdefault("priority", 1)
    kwargs.setdefault("status", TemplateStatus.CONFIRMED)
    return RouteTemplate(**kwargs)


def _expand(template, overrides=None, start=MONDAY, end=MONDAY + timedelta(days=6)):
    return list(expand_template(template, _route(), overrides or {}, start, end))


def test_weekday_filter_uses_iso_weekdays():
    """Monday/Wednesday/Friday only."""
    template = _template(days_of_week=[1, 3, 5])
    dates = [o.schedule_date for o in _expand(template)]
    assert dates == [MONDAY, MONDAY + timedelta(days=2), MONDAY + timedelta(days=4)]


def test_never_yields_outside_template_range():
    template = _template(start_date=MONDAY + timedelta(days=2), end_date=MONDAY + timedelta(days=4))
    occurrences = _expand(template, start=MONDAY - timedelta(days=10), end=MONDAY + timedelta(days=20))

    assert [o.schedule_date for o in occurrences] == [
        MONDAY + timedelta(days=2), MONDAY + timedelta(days=3), MONDAY + timedelta(days=4)
    ]


def test_open_ended_template_stops_after_one_year():
    start = date(2025, 1, 1)
    template = _template(start_date=start)
    occurrences = _expand(template, start=date(2025, 12, 30), end=date(2026, 1, 5))

    assert [o.schedule_date for o in occurrences] == [
        date(2025, 12, 30), date(2025, 12, 31), date(2026, 1, 1)
    ]


@pytest.mark.parametrize("status", [TemplateStatus.PENDING, TemplateStatus.CANCELLED])
def test_inactive_templates_yield_nothing(status):
    assert _expand(_template(status=status)) == []


def test_single_template_runs_on_start_date_only():
    template = _template(schedule_type=ScheduleType.SINGLE, start_date=MONDAY + timedelta(days=1))
    occurrences = _expand(template)
    assert [o.schedule_date for o in occurrences] == [MONDAY + timedelta(days=1)]


def test_defaults_and_occurrence_identity():
    occurrence = _expand(_template(), end=MONDAY)[0]

    assert occurrence.occurrence_id == "10:2025-03-03"
    assert occurrence.driver_id == 5
    assert occurrence.vehicle_id == 7
    assert occurrence.standby_date == MONDAY
    assert occurrence.departure_date == MONDAY
    assert occurrence.status == OccurrenceStatus.CONFIRMED
    assert occurrence.has_override is False
    assert occurrence.estimated_arrival_at.time() == time(9, 0)


def test_changed_template_defaults_to_scheduled():
    occurrence = _expand(_template(status=TemplateStatus.CHANGED), end=MONDAY)[0]
    assert occurrence.status == OccurrenceStatus.SCHEDULED


def test_override_wins_field_by_field():
    override = OccurrenceOverride(
        id=99, template_id=10, schedule_date=MONDAY,
        driver_id=42, vehicle_id=None, departure_time=time(9, 15), is_deleted=False,
    )
    occurrence = _expand(_template(), {MONDAY: override}, end=MONDAY)[0]

    assert occurrence.driver_id == 42
    assert occurrence.vehicle_id == 7  # Null override falls back to the template
    assert occurrence.departure_time == time(9, 15)
    assert occurrence.standby_time == time(7, 30)
    assert occurrence.has_override is True
    assert occurrence.override_id == 99


def test_deleted_override_excludes_the_day():
    override = OccurrenceOverride(template_id=10, schedule_date=MONDAY, is_deleted=True)
    occurrences = _expand(_template(), {MONDAY: override}, end=MONDAY + timedelta(days=1))
    assert [o.schedule_date for o in occurrences] == [MONDAY + timedelta(days=1)]


def test_route_times_used_when_template_has_none():
    template = _template(standby_time=None, departure_time=None)
    route = _route(default_standby_time=time(5, 0), default_departure_time=time(5, 30))
    occurrence = list(expand_template(template, route, {}, MONDAY, MONDAY))[0]

    assert occurrence.standby_time == time(5, 0)
    assert occurrence.departure_time == time(5, 30)


def test_cross_day_flag():
    override = OccurrenceOverride(
        template_id=10, schedule_date=MONDAY, standby_date=MONDAY,
        departure_date=MONDAY + timedelta(days=1), is_deleted=False,
    )
    occurrence = _expand(_template(), {MONDAY: override}, end=MONDAY)[0]
    assert occurrence.is_cross_day is True


@pytest.mark.asyncio
async def test_list_occurrences_orders_and_filters(db_session, make_route, make_template, make_driver):
    driver = await make_driver("Alice")
    late = await make_route("RTE-B")
    early = await make_route("RTE-A")
    await make_template(late, departure_time=time(10, 0), start_date=MONDAY, end_date=MONDAY + timedelta(days=1))
    await make_template(early, departure_time=time(10, 0), start_date=MONDAY, end_date=MONDAY + timedelta(days=1),
                        default_driver_id=driver.id)

    occurrences = await list_occurrences(db_session, MONDAY, MONDAY + timedelta(days=1), use_cache=False)
    assert [(o.schedule_date, o.route_code) for o in occurrences] == [
        (MONDAY, "RTE-A"), (MONDAY, "RTE-B"),
        (MONDAY + timedelta(days=1), "RTE-A"), (MONDAY + timedelta(days=1), "RTE-B"),
    ]

    filtered = await list_occurrences(
        db_session, MONDAY, MONDAY + timedelta(days=1), OccurrenceFilters(driver_id=driver.id), use_cache=False
    )
    assert {o.route_code for o in filtered} == {"RTE-A"}
    assert len(filtered) == 2


@pytest.mark.asyncio
async def test_window_must_be_ordered(db_session):
    with pytest.raises(ScheduleValidationError):
        await list_occurrences(db_session, MONDAY, MONDAY - timedelta(days=1))


@pytest.mark.asyncio
async def test_cache_is_invalidated_by_template_mutation(
    db_session, redis_client_session, make_route, make_template, actor
):
    route = await make_route("RTE-A")
    template = await make_template(route, start_date=MONDAY)

    first = await list_occurrences(db_session, MONDAY, MONDAY)
    assert first[0].departure_time == time(8, 0)
    assert any(key.startswith("occurrences:0:") for key in redis_client_session.store)

    await template_store.update_template(
        db_session, template.id, RouteTemplateUpdate(departure_time=time(9, 0)), actor=actor
    )
    assert redis_client_session.store[GENERATION_KEY] == "1"

    second = await list_occurrences(db_session, MONDAY, MONDAY)
    assert second[0].departure_time == time(9, 0)


@pytest.mark.asyncio
async def test_window_computed_across_a_mutation_is_not_cached(
    db_session, redis_client_session, make_route, make_template, make_driver, actor, mocker
):
    route = await make_route("RTE-A")
    driver = await make_driver("Alice")
    template = await make_template(route, start_date=MONDAY)
    template_id, driver_id = template.id, driver.id

    compute = materializer._materialize_window

    async def mutated_while_computing(db, start, end):
        result = await compute(db, start, end)
        await template_store.update_template(
            db, template_id, RouteTemplateUpdate(default_driver_id=driver_id), actor=actor
        )
        return result

    mocker.patch(
        "transport_planner.app.services.materializer._materialize_window", side_effect=mutated_while_computing
    )
    first = await list_occurrences(db_session, MONDAY, MONDAY)
    assert first[0].driver_id is None

    # The entry was written under the generation read before the update
    assert redis_client_session.store[GENERATION_KEY] == "1"
    assert not any(key.startswith("occurrences:1:") for key in redis_client_session.store)

    mocker.stopall()
    second = await list_occurrences(db_session, MONDAY, MONDAY)
    assert second[0].driver_id == driver_id


@pytest.mark.asyncio
async def test_cache_outage_falls_back_to_direct_computation(
    db_session, redis_client_session, make_route, make_template, mocker
):
    from redis.exceptions import ConnectionError as RedisConnectionError

    route = await make_route("RTE-A")
    await make_template(route, start_date=MONDAY)
    mocker.patch.object(redis_client_session, "get", side_effect=RedisConnectionError("down"))
    mocker.patch.object(redis_client_session, "set", side_effect=RedisConnectionError("down"))

    occurrences = await list_occurrences(db_session, MONDAY, MONDAY)
    assert len(occurrences) == 1
