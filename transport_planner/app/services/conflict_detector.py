"""
Conflict detector.

Flags drivers and vehicles booked on more than one occurrence of the same
date and warns template owners about occurrences whose standby falls on a
different day than their departure. A run replaces everything previously
derived for its date in one transaction.
"""

import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from transport_planner.app.core.config import settings
from transport_planner.app.core.exceptions import (
    ResourceNotFoundError, ScheduleValidationError, InvalidStateError
)
from transport_planner.app.models.analysis_enums import ConflictType, ConflictSeverity, ConflictStatus
from transport_planner.app.models.audit_log import AuditOperation
from transport_planner.app.models.conflict_check import ConflictCheck
from transport_planner.app.models.route_alert import AlertType, AlertSeverity
from transport_planner.app.models.schedule_enums import BOOKED_OCCURRENCE_STATUSES
from transport_planner.app.schemas.conflict import ConflictResolution
from transport_planner.app.schemas.occurrence import ScheduleOccurrence
from transport_planner.app.services.alert_service import AlertService
from transport_planner.app.services.audit import record_audit, snapshot
from transport_planner.app.services.materializer import list_occurrences

logger = logging.getLogger(__name__)

# Alert types owned by detection; both are replaced on every run for a date
DETECTION_ALERT_TYPES = (AlertType.CONFLICT, AlertType.TIME_CROSS_DAY)


class ResourceConflict:
    """One over-booked driver or vehicle, before it is persisted."""

    def __init__(self, conflict_type: ConflictType, resource_id: int,
                 occurrences: List[ScheduleOccurrence], severity: ConflictSeverity):
        self.conflict_type = conflict_type
        self.resource_id = resource_id
        self.occurrences = occurrences
        self.severity = severity

    @property
    def occurrence_ids(self) -> List[str]:
        return sorted(o.occurrence_id for o in self.occurrences)

    @property
    def route_ids(self) -> List[int]:
        return sorted({o.route_id for o in self.occurrences})

    @property
    def signature(self) -> Tuple[ConflictType, int, Tuple[str, ...]]:
        return self.conflict_type, self.resource_id, tuple(self.occurrence_ids)


def group_resource_conflicts(
    occurrences: Sequence[ScheduleOccurrence],
    high_severity_size: Optional[int] = None,
) -> List[ResourceConflict]:
    """
    Group booked occurrences by driver, then by vehicle, and return every
    group holding more than one occurrence.
    """
    high_size = high_severity_size or settings.conflict_high_severity_group_size
    booked = [o for o in occurrences if o.status in BOOKED_OCCURRENCE_STATUSES]

    conflicts: List[ResourceConflict] = []
    for conflict_type, attr in (
        (ConflictType.DRIVER_OVERLAP, "driver_id"),
        (ConflictType.VEHICLE_OVERLAP, "vehicle_id"),
    ):
        groups: Dict[int, List[ScheduleOccurrence]] = defaultdict(list)
        for occurrence in booked:
            resource_id = getattr(occurrence, attr)
            if resource_id is not None:
                groups[resource_id].append(occurrence)

        for resource_id in sorted(groups):
            group = groups[resource_id]
            if len(group) < 2:
                continue
            severity = ConflictSeverity.HIGH if len(group) >= high_size else ConflictSeverity.MEDIUM
            conflicts.append(ResourceConflict(conflict_type, resource_id, group, severity))

    return conflicts


def find_cross_day(occurrences: Sequence[ScheduleOccurrence]) -> List[ScheduleOccurrence]:
    """Occurrences whose standby date is not their departure date."""
    return [o for o in occurrences if o.is_cross_day]


async def _previous_decisions(db: AsyncSession, check_date: date) -> Dict[tuple, ConflictCheck]:
    result = await db.execute(
        select(ConflictCheck).where(
            ConflictCheck.check_date == check_date,
            ConflictCheck.status != ConflictStatus.OPEN,
        )
    )
    decided = {}
    for row in result.scalars().all():
        resource_id = row.driver_id if row.conflict_type == ConflictType.DRIVER_OVERLAP else row.vehicle_id
        decided[(row.conflict_type, resource_id, tuple(row.conflicting_occurrences))] = row
    return decided


async def detect_conflicts(
    db: AsyncSession,
    check_date: date,
    actor: Optional[dict] = None,
    use_cache: bool = True,
) -> List[ConflictCheck]:
    """
    Recompute conflicts for one date.

    Prior conflict rows and Conflict/TimeCrossDay alerts for the date are
    deleted and the new set written in a single commit. A group that was
    already Resolved or Ignored with exactly the same occurrences keeps its
    decision.
    """
    occurrences = await list_occurrences(db, check_date, check_date, use_cache=use_cache)
    conflicts = group_resource_conflicts(occurrences)
    cross_day = find_cross_day(occurrences)

    try:
        decided = await _previous_decisions(db, check_date)
        await db.execute(delete(ConflictCheck).where(ConflictCheck.check_date == check_date))
        await AlertService.clear_alerts(db, DETECTION_ALERT_TYPES, check_date)

        records: List[ConflictCheck] = []
        for conflict in conflicts:
            record = ConflictCheck(
                check_date=check_date,
                driver_id=conflict.resource_id if conflict.conflict_type == ConflictType.DRIVER_OVERLAP else None,
                vehicle_id=conflict.resource_id if conflict.conflict_type == ConflictType.VEHICLE_OVERLAP else None,
                conflicting_occurrences=conflict.occurrence_ids,
                conflict_type=conflict.conflict_type,
                severity=conflict.severity,
                status=ConflictStatus.OPEN,
            )
            previous = decided.get(conflict.signature)
            if previous is not None:
                record.status = previous.status
                record.resolution_notes = previous.resolution_notes
                record.resolved_at = previous.resolved_at
            db.add(record)
            records.append(record)
        await db.flush()

        seen: Set[Tuple[str, int]] = set()
        alerts = 0
        for conflict, record in zip(conflicts, records):
            if record.status != ConflictStatus.OPEN:
                continue
            label = "Driver" if conflict.conflict_type == ConflictType.DRIVER_OVERLAP else "Vehicle"
            for route_id in conflict.route_ids:
                alerts += await AlertService.fan_out(
                    db, route_id, AlertType.CONFLICT,
                    title=f"{label} {conflict.resource_id} double-booked on {check_date.isoformat()}",
                    message=f"{len(conflict.occurrences)} occurrences share this {label.lower()}",
                    severity=AlertSeverity.HIGH if conflict.severity == ConflictSeverity.HIGH else AlertSeverity.MEDIUM,
                    trigger_key=f"conflict:{record.id}",
                    seen=seen,
                    alert_date=check_date,
                    metadata={"conflict_id": record.id, "occurrences": conflict.occurrence_ids},
                )

        for occurrence in cross_day:
            if occurrence.owner_user_id is None:
                continue
            await AlertService.create_alert(
                db,
                occurrence.owner_user_id,
                AlertType.TIME_CROSS_DAY,
                title=f"Standby and departure on different days: {occurrence.route_code or occurrence.route_id}",
                message=(
                    f"Standby {occurrence.standby_date.isoformat()}, "
                    f"departure {occurrence.departure_date.isoformat()}"
                ),
                severity=AlertSeverity.MEDIUM,
                template_id=occurrence.template_id,
                occurrence_id=occurrence.occurrence_id,
                route_id=occurrence.route_id,
                alert_date=check_date,
            )
            alerts += 1

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    for record in records:
        await db.refresh(record)
    logger.info(
        "Conflict detection for %s: %d conflicts, %d cross-day, %d alerts",
        check_date, len(records), len(cross_day), alerts
    )
    return records


async def list_conflicts(
    db: AsyncSession,
    check_date: Optional[date] = None,
    status: Optional[ConflictStatus] = None,
    limit: int = 100,
) -> List[ConflictCheck]:
    query = select(ConflictCheck)
    if check_date is not None:
        query = query.where(ConflictCheck.check_date == check_date)
    if status is not None:
        query = query.where(ConflictCheck.status == status)
    query = query.order_by(ConflictCheck.check_date, ConflictCheck.id).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


async def resolve_conflict(
    db: AsyncSession,
    conflict_id: int,
    resolution: ConflictResolution,
    actor: Optional[dict] = None,
) -> ConflictCheck:
    """Close an Open conflict as Resolved or Ignored."""
    if resolution.status == ConflictStatus.OPEN:
        raise ScheduleValidationError("Resolution status must be Resolved or Ignored")

    conflict = await db.get(ConflictCheck, conflict_id)
    if conflict is None:
        raise ResourceNotFoundError("ConflictCheck", conflict_id)
    if conflict.status != ConflictStatus.OPEN:
        raise InvalidStateError(
            f"Conflict is already {conflict.status.value}",
            details={"conflict_id": conflict_id},
        )

    before = snapshot(conflict)
    conflict.status = resolution.status
    conflict.resolution_notes = resolution.resolution_notes
    conflict.resolved_at = datetime.utcnow()
    await db.commit()
    await db.refresh(conflict)

    await record_audit(
        db, ConflictCheck.__tablename__, conflict.id, AuditOperation.UPDATE,
        before=before, after=snapshot(conflict), actor=actor,
    )
    return conflict
