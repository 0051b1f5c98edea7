"""
Batch passes.

Conflict detection and suggestion generation run per date. Each (task, date)
is independent: a failure is rolled back, logged and parked in the dead
letter queue, and the batch moves on to the next one.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from transport_planner.app.core.config import settings
from transport_planner.app.core.exceptions import ResourceNotFoundError, InvalidStateError
from transport_planner.app.models.dlq import DeadLetterQueue, DLQStatus
from transport_planner.app.schemas.ops import DailyPassResult, PassFailure
from transport_planner.app.services.alert_service import AlertService
from transport_planner.app.services.conflict_detector import detect_conflicts
from transport_planner.app.services.suggestion_engine import suggest_consolidations
from transport_planner.app.services.team import expire_stale_offers

logger = logging.getLogger(__name__)

DETECTION_TASK = "detect_conflicts"
SUGGESTION_TASK = "suggest_consolidations"
MAX_RETRIES = 5


def date_range(start: date, end: Optional[date] = None) -> List[date]:
    end = end or start
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


async def run_task(db: AsyncSession, task_name: str, target_date: date) -> int:
    """Run one pass for one date against committed state. Returns rows produced."""
    handlers = {
        DETECTION_TASK: detect_conflicts,
        SUGGESTION_TASK: suggest_consolidations,
    }
    handler = handlers.get(task_name)
    if handler is None:
        raise ValueError(f"Unknown batch task: {task_name}")
    rows = await handler(db, target_date, use_cache=False)
    return len(rows)


async def record_failure(db: AsyncSession, task_name: str, target_date: date, exc: Exception) -> Optional[int]:
    item = DeadLetterQueue(
        task_name=task_name,
        error_message=f"{type(exc).__name__}: {exc}",
        payload={"date": target_date.isoformat()},
        status=DLQStatus.FAILED,
    )
    try:
        db.add(item)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Could not park failed %s for %s in the DLQ", task_name, target_date)
        return None
    return item.id


async def run_daily_pass(
    db: AsyncSession,
    dates: Iterable[date],
    run_detection: bool = True,
    run_suggestions: bool = True,
) -> DailyPassResult:
    """
    Run detection and/or suggestions for every date.

    ``dates_processed`` lists dates on which every requested task succeeded;
    each failed (task, date) appears in ``failures``.
    """
    tasks = []
    if run_detection:
        tasks.append(DETECTION_TASK)
    if run_suggestions:
        tasks.append(SUGGESTION_TASK)

    result = DailyPassResult()
    for target_date in dates:
        ok = True
        for task_name in tasks:
            try:
                produced = await run_task(db, task_name, target_date)
            except Exception as exc:
                ok = False
                await db.rollback()
                logger.exception("Batch task %s failed for %s", task_name, target_date)
                dlq_id = await record_failure(db, task_name, target_date, exc)
                result.failures.append(PassFailure(
                    task_name=task_name, target_date=target_date, error=str(exc), dlq_id=dlq_id
                ))
                continue

            if task_name == DETECTION_TASK:
                result.conflicts_found += produced
            else:
                result.suggestions_found += produced

        if ok:
            result.dates_processed.append(target_date)

    logger.info(
        "Daily pass finished: %d dates ok, %d conflicts, %d suggestions, %d failures",
        len(result.dates_processed), result.conflicts_found, result.suggestions_found, len(result.failures)
    )
    return result


async def list_dlq(db: AsyncSession, status: Optional[DLQStatus] = None, limit: int = 100) -> List[DeadLetterQueue]:
    query = select(DeadLetterQueue)
    if status is not None:
        query = query.where(DeadLetterQueue.status == status)
    result = await db.execute(query.order_by(DeadLetterQueue.id.desc()).limit(limit))
    return result.scalars().all()


async def retry_dlq_item(db: AsyncSession, dlq_id: int) -> DeadLetterQueue:
    """
    Re-run a parked task for its date. Success marks the item PROCESSED; a
    failure keeps it FAILED until MAX_RETRIES, then ARCHIVED.
    """
    item = await db.get(DeadLetterQueue, dlq_id)
    if item is None:
        raise ResourceNotFoundError("DLQ item", dlq_id)
    if item.status in (DLQStatus.PROCESSED, DLQStatus.ARCHIVED):
        raise InvalidStateError(f"DLQ item is already {item.status.value}", details={"dlq_id": dlq_id})

    item.status = DLQStatus.RETRYING
    item.retry_count += 1
    item.last_retry_at = datetime.utcnow()
    await db.commit()

    target_date = date.fromisoformat(item.payload["date"])
    try:
        await run_task(db, item.task_name, target_date)
    except Exception as exc:
        await db.rollback()
        await db.refresh(item)
        logger.exception("Retry of DLQ item %s failed", dlq_id)
        item.error_message = f"{type(exc).__name__}: {exc}"
        item.status = DLQStatus.ARCHIVED if item.retry_count >= MAX_RETRIES else DLQStatus.FAILED
    else:
        await db.refresh(item)
        item.status = DLQStatus.PROCESSED

    await db.commit()
    await db.refresh(item)
    return item


async def run_scheduled_jobs(db: AsyncSession, now: Optional[datetime] = None) -> DailyPassResult:
    """
    Everything the daily scheduler runs: passes for the next
    ``daily_pass_days_ahead`` days, the offer expiry sweep, departure
    reminders and yesterday's unread digest.
    """
    now = now or datetime.utcnow()
    today = now.date()

    result = await run_daily_pass(
        db, date_range(today + timedelta(days=1), today + timedelta(days=settings.daily_pass_days_ahead))
    )

    await expire_stale_offers(db, now)

    await AlertService.emit_departure_reminders(db, now)
    await db.commit()

    await AlertService.count_unread_digest(db, today - timedelta(days=1))
    return result
