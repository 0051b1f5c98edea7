"""
Suggestion engine.

Scores ordered pairs of occurrences on a date for back-to-back feasibility:
the driver of the first route could reposition and run the second. Pairs are
scored on gap time and repositioning distance; the best ones per source
route are persisted as SmartSuggestion rows.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from transport_planner.app.core.config import settings
from transport_planner.app.core.exceptions import (
    ScheduleValidationError, ResourceNotFoundError, InvalidStateError
)
from transport_planner.app.models.analysis_enums import SuggestionStatus
from transport_planner.app.models.audit_log import AuditOperation
from transport_planner.app.models.fleet_route import Route
from transport_planner.app.models.route_alert import AlertType, AlertSeverity
from transport_planner.app.models.route_distance import RouteDistance
from transport_planner.app.models.schedule_enums import BOOKED_OCCURRENCE_STATUSES
from transport_planner.app.models.smart_suggestion import SmartSuggestion
from transport_planner.app.models.suggestion_config import SuggestionConfig
from transport_planner.app.schemas.occurrence import ScheduleOccurrence
from transport_planner.app.schemas.suggestion import SuggestionSettings, SuggestionDecision
from transport_planner.app.services.alert_service import AlertService
from transport_planner.app.services.audit import record_audit, snapshot
from transport_planner.app.services.geo import repositioning_distance, travel_time_minutes
from transport_planner.app.services.materializer import list_occurrences

logger = logging.getLogger(__name__)

SETTING_KEYS = tuple(SuggestionSettings.model_fields)


def default_suggestion_settings() -> SuggestionSettings:
    return SuggestionSettings(**{key: getattr(settings, key) for key in SETTING_KEYS})


async def _config_rows(db: AsyncSession) -> Dict[str, SuggestionConfig]:
    result = await db.execute(select(SuggestionConfig))
    return {row.config_key: row for row in result.scalars().all()}


async def load_suggestion_config(db: AsyncSession) -> SuggestionSettings:
    """Defaults from settings, overridden by active suggestion_config rows."""
    defaults = default_suggestion_settings()
    values = defaults.model_dump()
    for key, row in (await _config_rows(db)).items():
        if row.is_active and key in values:
            values[key] = row.config_value

    try:
        return SuggestionSettings(**values)
    except ValidationError:
        logger.error("Stored suggestion config is inconsistent, using defaults", exc_info=True)
        return defaults


async def update_suggestion_config(
    db: AsyncSession,
    values: Dict[str, float],
    actor: Optional[dict] = None,
) -> SuggestionSettings:
    """
    Apply new tuning values. The merged configuration is validated as a whole
    before anything is written.

    Raises:
        ScheduleValidationError: unknown key, value outside a row's bounds,
            or an inconsistent merged configuration
    """
    unknown = sorted(set(values) - set(SETTING_KEYS))
    if unknown:
        raise ScheduleValidationError("Unknown suggestion config keys", details={"keys": unknown})

    rows = await _config_rows(db)
    for key, value in values.items():
        row = rows.get(key)
        if row is None:
            continue
        if (row.min_value is not None and value < row.min_value) or \
                (row.max_value is not None and value > row.max_value):
            raise ScheduleValidationError(
                f"{key} must be between {row.min_value} and {row.max_value}",
                details={"key": key, "value": value},
            )

    merged = (await load_suggestion_config(db)).model_dump()
    merged.update(values)
    try:
        new_settings = SuggestionSettings(**merged)
    except ValidationError as exc:
        raise ScheduleValidationError(
            "Invalid suggestion configuration",
            details={"errors": [e["msg"] for e in exc.errors()]},
        )

    audits = []
    for key, value in values.items():
        row = rows.get(key)
        if row is None:
            row = SuggestionConfig(config_key=key, config_value=value, category="suggestion")
            db.add(row)
            audits.append((row, AuditOperation.INSERT, None))
        else:
            before = snapshot(row)
            row.config_value = value
            row.is_active = True
            audits.append((row, AuditOperation.UPDATE, before))
    await db.commit()

    for row, operation, before in audits:
        await db.refresh(row)
        await record_audit(
            db, SuggestionConfig.__tablename__, row.id, operation,
            before=before, after=snapshot(row), actor=actor,
        )
    logger.info("Suggestion config updated: %s", values)
    return new_settings


def score_pair(distance_km: float, gap_minutes: float, config: SuggestionSettings) -> float:
    """dw * (1 - d / maxD) + tw * (1 - gap / maxGap)"""
    return (
        config.distance_weight * (1 - distance_km / config.max_distance_km)
        + config.time_weight * (1 - gap_minutes / config.max_gap_minutes)
    )


def estimate_cost_savings(
    distance_km: float,
    travel_minutes: float,
    to_duration_minutes: Optional[int],
    config: SuggestionSettings,
) -> float:
    """Driver cost of the second run avoided, minus the repositioning cost."""
    saved = config.driver_hourly_rate * (to_duration_minutes or 0) / 60
    repositioning = distance_km * config.fuel_cost_per_km + travel_minutes / 60 * config.driver_hourly_rate
    return round(max(saved - repositioning, 0.0), 2)


async def lookup_distance(
    db: AsyncSession,
    from_route: Route,
    to_route: Route,
    config: SuggestionSettings,
) -> Optional[RouteDistance]:
    """
    Cached repositioning distance between two routes. Computed from route
    coordinates and cached on a miss; None when coordinates are missing.
    """
    result = await db.execute(
        select(RouteDistance).where(
            RouteDistance.from_route_id == from_route.id,
            RouteDistance.to_route_id == to_route.id,
        )
    )
    cached = result.scalar_one_or_none()
    if cached is not None:
        if cached.travel_time_minutes is None:
            cached.travel_time_minutes = travel_time_minutes(
                cached.distance_km, config.average_speed_kmh, cached.traffic_factor or config.traffic_factor
            )
        return cached

    distance_km = repositioning_distance(from_route, to_route)
    if distance_km is None:
        return None

    cached = RouteDistance(
        from_route_id=from_route.id,
        to_route_id=to_route.id,
        distance_km=distance_km,
        travel_time_minutes=travel_time_minutes(distance_km, config.average_speed_kmh, config.traffic_factor),
        traffic_factor=config.traffic_factor,
    )
    db.add(cached)
    await db.flush()
    return cached


class Candidate:
    def __init__(self, source: ScheduleOccurrence, target: ScheduleOccurrence, target_code: str,
                 gap_minutes: float, distance: RouteDistance, efficiency: float, savings: float):
        self.source = source
        self.target = target
        self.target_code = target_code
        self.gap_minutes = gap_minutes
        self.distance = distance
        self.efficiency = efficiency
        self.savings = savings

    @property
    def pair(self) -> Tuple[int, int]:
        return self.source.route_id, self.target.route_id

    def rank(self):
        return -self.efficiency, self.gap_minutes, self.target_code


def _gap_minutes(source: ScheduleOccurrence, target: ScheduleOccurrence) -> Optional[float]:
    arrival = source.estimated_arrival_at
    departure = target.departure_at
    if arrival is None or departure is None:
        return None
    return (departure - arrival).total_seconds() / 60


async def score_candidates(
    db: AsyncSession,
    occurrences: List[ScheduleOccurrence],
    routes: Dict[int, Route],
    config: SuggestionSettings,
) -> List[Candidate]:
    """Best qualifying candidate per (source route, target route)."""
    best: Dict[Tuple[int, int], Candidate] = {}
    distances: Dict[Tuple[int, int], Optional[RouteDistance]] = {}

    for source in occurrences:
        for target in occurrences:
            if source.route_id == target.route_id:
                continue

            gap = _gap_minutes(source, target)
            if gap is None or gap < config.min_gap_minutes or gap > config.max_gap_minutes:
                continue

            pair = (source.route_id, target.route_id)
            if pair not in distances:
                distances[pair] = await lookup_distance(db, routes[source.route_id], routes[target.route_id], config)
            distance = distances[pair]
            if distance is None or distance.distance_km > config.max_distance_km:
                continue

            efficiency = score_pair(distance.distance_km, gap, config)
            if efficiency < config.efficiency_threshold:
                continue

            candidate = Candidate(
                source, target, routes[target.route_id].route_code or "",
                gap, distance, round(efficiency, 4),
                estimate_cost_savings(
                    distance.distance_km, distance.travel_time_minutes or 0,
                    target.estimated_duration_minutes, config,
                ),
            )
            current = best.get(pair)
            if current is None or candidate.rank() < current.rank():
                best[pair] = candidate

    return list(best.values())


def cap_per_source(candidates: List[Candidate], limit: int) -> List[Candidate]:
    """Top ``limit`` candidates per source route by efficiency, then gap, then target code."""
    by_source: Dict[int, List[Candidate]] = {}
    for candidate in candidates:
        by_source.setdefault(candidate.source.route_id, []).append(candidate)

    kept: List[Candidate] = []
    for source_route in sorted(by_source):
        ranked = sorted(by_source[source_route], key=Candidate.rank)
        kept.extend(ranked[:limit])
    return kept


async def suggest_consolidations(
    db: AsyncSession,
    suggestion_date: date,
    actor: Optional[dict] = None,
    use_cache: bool = True,
) -> List[SmartSuggestion]:
    """
    Compute and persist consolidation suggestions for one date.

    Rows are upserted on (from_route, to_route, date). Accepted and Rejected
    rows keep their decision; Pending rows that no longer qualify are removed.
    """
    config = await load_suggestion_config(db)
    occurrences = [
        o for o in await list_occurrences(db, suggestion_date, suggestion_date, use_cache=use_cache)
        if o.status in BOOKED_OCCURRENCE_STATUSES
    ]

    route_ids = {o.route_id for o in occurrences}
    routes: Dict[int, Route] = {}
    if route_ids:
        result = await db.execute(select(Route).where(Route.id.in_(route_ids)))
        routes = {r.id: r for r in result.scalars().all()}

    try:
        candidates = cap_per_source(
            await score_candidates(db, occurrences, routes, config),
            config.max_suggestions_per_route,
        )

        existing_result = await db.execute(
            select(SmartSuggestion).where(SmartSuggestion.suggestion_date == suggestion_date)
        )
        existing = {(s.from_route_id, s.to_route_id): s for s in existing_result.scalars().all()}

        kept_pairs = set()
        created: List[SmartSuggestion] = []
        suggestions: List[SmartSuggestion] = []
        for candidate in candidates:
            kept_pairs.add(candidate.pair)
            row = existing.get(candidate.pair)
            if row is None:
                row = SmartSuggestion(
                    from_route_id=candidate.source.route_id,
                    to_route_id=candidate.target.route_id,
                    suggestion_date=suggestion_date,
                    status=SuggestionStatus.PENDING,
                )
                db.add(row)
                created.append(row)
            row.from_occurrence_id = candidate.source.occurrence_id
            row.to_occurrence_id = candidate.target.occurrence_id
            row.gap_minutes = int(round(candidate.gap_minutes))
            row.distance_km = candidate.distance.distance_km
            row.travel_time_minutes = candidate.distance.travel_time_minutes
            row.efficiency_score = candidate.efficiency
            row.cost_savings_estimate = candidate.savings
            suggestions.append(row)

        stale = [
            row.id for pair, row in existing.items()
            if pair not in kept_pairs and row.status == SuggestionStatus.PENDING
        ]
        if stale:
            await db.execute(delete(SmartSuggestion).where(SmartSuggestion.id.in_(stale)))
        await db.flush()

        seen = set()
        for row in created:
            await AlertService.fan_out(
                db, row.from_route_id, AlertType.NOTIFICATION,
                title=f"Consolidation suggestion for {suggestion_date.isoformat()}",
                message=(
                    f"Route {routes[row.to_route_id].route_code or row.to_route_id} can follow "
                    f"after a {row.gap_minutes} min gap ({row.distance_km} km away)"
                ),
                severity=AlertSeverity.LOW,
                trigger_key=f"suggestion:{row.id}",
                seen=seen,
                alert_date=suggestion_date,
                metadata={"suggestion_id": row.id, "efficiency_score": row.efficiency_score},
            )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    for row in suggestions:
        await db.refresh(row)
    logger.info(
        "Suggestions for %s: %d kept (%d new), %d stale removed",
        suggestion_date, len(suggestions), len(created), len(stale)
    )
    return suggestions


async def list_suggestions(
    db: AsyncSession,
    suggestion_date: Optional[date] = None,
    status: Optional[SuggestionStatus] = None,
    route_id: Optional[int] = None,
    limit: int = 100,
) -> List[SmartSuggestion]:
    query = select(SmartSuggestion)
    if suggestion_date is not None:
        query = query.where(SmartSuggestion.suggestion_date == suggestion_date)
    if status is not None:
        query = query.where(SmartSuggestion.status == status)
    if route_id is not None:
        query = query.where(SmartSuggestion.from_route_id == route_id)
    query = query.order_by(
        SmartSuggestion.suggestion_date, SmartSuggestion.efficiency_score.desc(), SmartSuggestion.id
    ).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


async def decide_suggestion(
    db: AsyncSession,
    suggestion_id: int,
    decision: SuggestionDecision,
    actor: Optional[dict] = None,
) -> SmartSuggestion:
    """Accept or reject a Pending suggestion."""
    if decision.status == SuggestionStatus.PENDING:
        raise ScheduleValidationError("Decision must be Accepted or Rejected")

    suggestion = await db.get(SmartSuggestion, suggestion_id)
    if suggestion is None:
        raise ResourceNotFoundError("SmartSuggestion", suggestion_id)
    if suggestion.status != SuggestionStatus.PENDING:
        raise InvalidStateError(
            f"Suggestion is already {suggestion.status.value}",
            details={"suggestion_id": suggestion_id},
        )

    before = snapshot(suggestion)
    suggestion.status = decision.status
    if decision.notes is not None:
        suggestion.notes = decision.notes
    await db.commit()
    await db.refresh(suggestion)

    await record_audit(
        db, SmartSuggestion.__tablename__, suggestion.id, AuditOperation.UPDATE,
        before=before, after=snapshot(suggestion), actor=actor,
    )
    return suggestion
