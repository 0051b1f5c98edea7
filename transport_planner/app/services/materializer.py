"""
Instance materializer.

Expands route templates into concrete daily occurrences over a date window
and merges per-day overrides on top of template defaults. This is the only
place the default-merge happens; the calendar API, conflict detector and
suggestion engine all read occurrences through list_occurrences().
"""

import logging
from datetime import date, time, timedelta
from typing import Dict, Iterator, List, Mapping, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from transport_planner.app.core.config import settings
from transport_planner.app.core.exceptions import ScheduleValidationError
from transport_planner.app.models.fleet_route import Route
from transport_planner.app.models.occurrence_override import OccurrenceOverride
from transport_planner.app.models.route_template import RouteTemplate
from transport_planner.app.models.schedule_enums import (
    MATERIALIZED_TEMPLATE_STATUSES, OccurrenceStatus, ScheduleType, TemplateStatus
)
from transport_planner.app.schemas.occurrence import OccurrenceFilters, ScheduleOccurrence, occurrence_key
from transport_planner.app.services.cache import OccurrenceCache

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
ALL_WEEKDAYS = frozenset(range(1, 8))
MAX_WINDOW_DAYS = 731


def recurrence_end(template: RouteTemplate) -> date:
    """Last day a template can produce; open-ended templates stop after the horizon."""
    if template.end_date is not None:
        return template.end_date
    return template.start_date + timedelta(days=settings.materialization_horizon_days)


def template_produces(template: RouteTemplate, day: date) -> bool:
    """True when the recurrence rule yields ``day``, regardless of template status."""
    if template.schedule_type == ScheduleType.SINGLE:
        return day == template.start_date
    if day < template.start_date or day > recurrence_end(template):
        return False
    weekdays = set(template.days_of_week) if template.days_of_week else ALL_WEEKDAYS
    return day.isoweekday() in weekdays


def _default_status(template: RouteTemplate) -> OccurrenceStatus:
    if template.status == TemplateStatus.CONFIRMED:
        return OccurrenceStatus.CONFIRMED
    return OccurrenceStatus.SCHEDULED


def _pick(override: Optional[OccurrenceOverride], field: str, fallback):
    if override is None:
        return fallback
    value = getattr(override, field)
    return fallback if value is None else value


def build_occurrence(
    template: RouteTemplate,
    route: Route,
    day: date,
    override: Optional[OccurrenceOverride] = None,
) -> ScheduleOccurrence:
    """Merge one day's override over the template (and route) defaults."""
    standby_default = template.standby_time or route.default_standby_time
    departure_default = template.departure_time or route.default_departure_time

    return ScheduleOccurrence(
        occurrence_id=occurrence_key(template.id, day),
        template_id=template.id,
        route_id=route.id,
        route_code=route.route_code,
        route_name=route.name,
        schedule_name=template.schedule_name,
        schedule_date=day,
        driver_id=_pick(override, "driver_id", template.default_driver_id),
        vehicle_id=_pick(override, "vehicle_id", template.default_vehicle_id),
        standby_date=_pick(override, "standby_date", day),
        standby_time=_pick(override, "standby_time", standby_default),
        departure_date=_pick(override, "departure_date", day),
        departure_time=_pick(override, "departure_time", departure_default),
        status=_pick(override, "status", _default_status(template)),
        owner_user_id=template.owner_user_id,
        priority=template.priority or 1,
        estimated_duration_minutes=route.estimated_duration_minutes,
        has_override=override is not None,
        override_id=override.id if override is not None else None,
    )


def expand_template(
    template: RouteTemplate,
    route: Route,
    overrides: Mapping[date, OccurrenceOverride],
    window_start: date,
    window_end: date,
) -> Iterator[ScheduleOccurrence]:
    """
    Lazily yield the template's occurrences inside [window_start, window_end].

    Nothing is yielded unless the template is Confirmed or Changed. A day
    whose override is marked deleted is skipped entirely.
    """
    if template.status not in MATERIALIZED_TEMPLATE_STATUSES:
        return

    first = max(template.start_date, window_start)
    last = min(recurrence_end(template), window_end)
    if template.schedule_type == ScheduleType.SINGLE:
        last = min(last, template.start_date)

    day = first
    while day <= last:
        if template_produces(template, day):
            override = overrides.get(day)
            if override is None or not override.is_deleted:
                yield build_occurrence(template, route, day, override)
        day += ONE_DAY


def _sort_key(occurrence: ScheduleOccurrence):
    return (
        occurrence.schedule_date,
        occurrence.departure_time or time.max,
        occurrence.route_code or "",
        occurrence.template_id,
    )


async def _materialize_window(db: AsyncSession, start: date, end: date) -> List[ScheduleOccurrence]:
    templates_result = await db.execute(
        select(RouteTemplate).where(
            RouteTemplate.status.in_(MATERIALIZED_TEMPLATE_STATUSES),
            RouteTemplate.start_date <= end,
            or_(RouteTemplate.end_date.is_(None), RouteTemplate.end_date >= start),
        )
    )
    templates = templates_result.scalars().all()
    if not templates:
        return []

    route_ids = {t.route_id for t in templates}
    routes_result = await db.execute(select(Route).where(Route.id.in_(route_ids)))
    routes = {r.id: r for r in routes_result.scalars().all()}

    template_ids = [t.id for t in templates]
    overrides_result = await db.execute(
        select(OccurrenceOverride).where(
            OccurrenceOverride.template_id.in_(template_ids),
            OccurrenceOverride.schedule_date >= start,
            OccurrenceOverride.schedule_date <= end,
        )
    )
    overrides_by_template: Dict[int, Dict[date, OccurrenceOverride]] = {}
    for override in overrides_result.scalars().all():
        overrides_by_template.setdefault(override.template_id, {})[override.schedule_date] = override

    occurrences: List[ScheduleOccurrence] = []
    for template in templates:
        route = routes.get(template.route_id)
        if route is None:
            logger.warning("Template %s references missing route %s", template.id, template.route_id)
            continue
        occurrences.extend(
            expand_template(template, route, overrides_by_template.get(template.id, {}), start, end)
        )

    occurrences.sort(key=_sort_key)
    return occurrences


async def list_occurrences(
    db: AsyncSession,
    start: date,
    end: date,
    filters: Optional[OccurrenceFilters] = None,
    use_cache: bool = True,
) -> List[ScheduleOccurrence]:
    """
    All occurrences between ``start`` and ``end`` (inclusive), ordered by date,
    departure time and route code.

    Batch passes call this with ``use_cache=False`` so they always see
    committed state.
    """
    if start > end:
        raise ScheduleValidationError(
            "Window start must not be after window end",
            details={"start": start.isoformat(), "end": end.isoformat()},
        )
    if (end - start).days > MAX_WINDOW_DAYS:
        raise ScheduleValidationError(
            f"Window may span at most {MAX_WINDOW_DAYS} days",
            details={"start": start.isoformat(), "end": end.isoformat()},
        )

    generation = await OccurrenceCache.current_generation() if use_cache else None
    occurrences = None
    if generation is not None:
        occurrences = await OccurrenceCache.get(generation, start, end)
    if occurrences is None:
        occurrences = await _materialize_window(db, start, end)
        if generation is not None:
            await OccurrenceCache.set(generation, start, end, occurrences)

    if filters is None:
        return occurrences
    return [o for o in occurrences if filters.matches(o)]
