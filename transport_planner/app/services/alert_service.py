"""
Alert Service.

Creates route alerts for responsible users and manages their read state.
Services add alerts to the caller's session; the caller commits.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from datetime import date, datetime, timedelta
from typing import Optional, Dict, Any, List, Iterable, Set, Tuple

from transport_planner.app.core.config import settings
from transport_planner.app.models.route_alert import RouteAlert, AlertType, AlertSeverity
from transport_planner.app.models.route_responsibility import RouteResponsibility
from transport_planner.app.models.schedule_enums import BOOKED_OCCURRENCE_STATUSES
from transport_planner.app.models.user import User

logger = logging.getLogger(__name__)


class AlertService:

    @staticmethod
    async def responsible_users(db: AsyncSession, route_id: int) -> List[int]:
        """Distinct active users holding an active grant on the route."""
        result = await db.execute(
            select(RouteResponsibility.user_id)
            .join(User, User.id == RouteResponsibility.user_id)
            .where(
                RouteResponsibility.route_id == route_id,
                RouteResponsibility.is_active == True,
                User.is_active == True,
            )
            .distinct()
            .order_by(RouteResponsibility.user_id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def create_alert(
        db: AsyncSession,
        user_id: int,
        alert_type: AlertType,
        title: str,
        message: Optional[str] = None,
        severity: AlertSeverity = AlertSeverity.MEDIUM,
        template_id: Optional[int] = None,
        occurrence_id: Optional[str] = None,
        route_id: Optional[int] = None,
        alert_date: Optional[date] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> RouteAlert:
        """Create a single alert."""
        alert = RouteAlert(
            user_id=user_id,
            alert_type=alert_type,
            severity=severity,
            title=title,
            message=message,
            template_id=template_id,
            occurrence_id=occurrence_id,
            route_id=route_id,
            alert_date=alert_date,
            metadata_payload=metadata
        )
        db.add(alert)
        await db.flush()
        return alert

    @staticmethod
    async def fan_out(
        db: AsyncSession,
        route_id: int,
        alert_type: AlertType,
        title: str,
        message: Optional[str] = None,
        severity: AlertSeverity = AlertSeverity.MEDIUM,
        trigger_key: Optional[str] = None,
        seen: Optional[Set[Tuple[str, int]]] = None,
        **links
    ) -> int:
        """
        Alert every responsible user of a route.

        ``seen`` collects (trigger_key, user_id) pairs across one run so a
        user reached through several routes of the same trigger is alerted
        once. Returns the number of alerts created.
        """
        if seen is None:
            seen = set()
        key = trigger_key or f"{alert_type.value}:{route_id}"

        created = 0
        for user_id in await AlertService.responsible_users(db, route_id):
            if (key, user_id) in seen:
                continue
            seen.add((key, user_id))
            await AlertService.create_alert(
                db, user_id, alert_type, title, message, severity,
                route_id=route_id,
                **links
            )
            created += 1
        return created

    @staticmethod
    async def clear_alerts(db: AsyncSession, alert_types: Iterable[AlertType], alert_date: date) -> int:
        """Delete alerts of the given types about one schedule date."""
        stmt = delete(RouteAlert).where(
            RouteAlert.alert_type.in_(list(alert_types)),
            RouteAlert.alert_date == alert_date
        )
        result = await db.execute(stmt)
        return result.rowcount

    @staticmethod
    async def emit_departure_reminders(db: AsyncSession, now: Optional[datetime] = None) -> int:
        """
        Remind template owners of booked occurrences departing within the
        reminder window.

        Same-day reminders whose occurrence is no longer due (departed,
        cancelled or moved out of the window) are cleared first, so the
        stored reminders for a day always match the current due set. A due
        (occurrence, owner) pair that already has its reminder is skipped.
        """
        # Local import: the materializer pulls in the cache and schemas
        from transport_planner.app.services.materializer import list_occurrences

        now = now or datetime.utcnow()
        window_end = now + timedelta(minutes=settings.reminder_window_minutes)

        occurrences = await list_occurrences(db, now.date(), window_end.date(), use_cache=False)
        due = [
            o for o in occurrences
            if o.status in BOOKED_OCCURRENCE_STATUSES
            and o.owner_user_id is not None
            and o.departure_at is not None
            and now <= o.departure_at <= window_end
        ]
        due_ids = [o.occurrence_id for o in due]

        stale = delete(RouteAlert).where(
            RouteAlert.alert_type == AlertType.REMINDER,
            RouteAlert.alert_date.between(now.date(), window_end.date())
        )
        if due_ids:
            stale = stale.where(RouteAlert.occurrence_id.not_in(due_ids))
        cleared = (await db.execute(stale)).rowcount
        if cleared:
            logger.info("Cleared %d reminders for occurrences no longer due", cleared)

        if not due:
            return 0

        existing = await db.execute(
            select(RouteAlert.occurrence_id, RouteAlert.user_id).where(
                RouteAlert.alert_type == AlertType.REMINDER,
                RouteAlert.occurrence_id.in_(due_ids)
            )
        )
        already = {(row[0], row[1]) for row in existing.all()}

        created = 0
        for occurrence in due:
            if (occurrence.occurrence_id, occurrence.owner_user_id) in already:
                continue
            await AlertService.create_alert(
                db,
                occurrence.owner_user_id,
                AlertType.REMINDER,
                title=f"Departure soon: {occurrence.route_code or occurrence.route_id}",
                message=f"{occurrence.schedule_name} departs at {occurrence.departure_at:%H:%M}",
                severity=AlertSeverity.HIGH,
                template_id=occurrence.template_id,
                occurrence_id=occurrence.occurrence_id,
                route_id=occurrence.route_id,
                alert_date=occurrence.schedule_date,
            )
            created += 1

        logger.info("Emitted %d departure reminders", created)
        return created

    @staticmethod
    async def count_unread_digest(db: AsyncSession, day: date) -> Dict[int, int]:
        """Unread alert counts per user for one schedule date."""
        result = await db.execute(
            select(RouteAlert.user_id, func.count(RouteAlert.id))
            .where(RouteAlert.alert_date == day, RouteAlert.is_read == False)
            .group_by(RouteAlert.user_id)
        )
        counts = {user_id: count for user_id, count in result.all()}
        logger.info(
            "Unread alert digest for %s: %d alerts across %d users",
            day, sum(counts.values()), len(counts)
        )
        return counts

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: int,
        unread_only: bool = False,
        limit: int = 100
    ) -> List[RouteAlert]:
        query = select(RouteAlert).where(RouteAlert.user_id == user_id)
        if unread_only:
            query = query.where(RouteAlert.is_read == False)
        query = query.order_by(RouteAlert.id.desc()).limit(limit)
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def mark_read(db: AsyncSession, alert_id: int, user_id: int) -> bool:
        """Mark an alert as read."""
        stmt = update(RouteAlert).where(
            RouteAlert.id == alert_id,
            RouteAlert.user_id == user_id
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all alerts for user as read."""
        stmt = update(RouteAlert).where(
            RouteAlert.user_id == user_id,
            RouteAlert.is_read == False
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount
