"""
Batch pass tests.

Per-date isolation, dead letter queue parking and retries.
"""

import pytest
from datetime import date, datetime, timedelta

from transport_planner.app.core.exceptions import InvalidStateError
from transport_planner.app.models.dlq import DLQStatus
from transport_planner.app.services import batch_runner
from transport_planner.app.services.conflict_detector import detect_conflicts, list_conflicts

MONDAY = date(2025, 3, 3)
TUESDAY = MONDAY + timedelta(days=1)


@pytest.fixture
async def double_booked(make_route, make_template, make_driver):
    driver = await make_driver("Shared")
    await make_template(await make_route("RTE-A"), default_driver_id=driver.id)
    await make_template(await make_route("RTE-B"), default_driver_id=driver.id)
    return driver


@pytest.fixture
def monday_fails(mocker):
    async def flaky(db, target_date, use_cache=True):
        if target_date == MONDAY:
            raise RuntimeError("detector crashed")
        return await detect_conflicts(db, target_date, use_cache=use_cache)

    return mocker.patch(
        "transport_planner.app.services.batch_runner.detect_conflicts", side_effect=flaky
    )


def test_date_range_is_inclusive():
    assert batch_runner.date_range(MONDAY, TUESDAY) == [MONDAY, TUESDAY]
    assert batch_runner.date_range(MONDAY) == [MONDAY]


@pytest.mark.asyncio
async def test_failed_date_does_not_stop_the_batch(db_session, double_booked, monday_fails):
    result = await batch_runner.run_daily_pass(db_session, [MONDAY, TUESDAY], run_suggestions=False)

    assert result.dates_processed == [TUESDAY]
    assert result.conflicts_found == 1
    assert [(f.task_name, f.target_date) for f in result.failures] == [(batch_runner.DETECTION_TASK, MONDAY)]
    assert result.failures[0].dlq_id is not None

    assert await list_conflicts(db_session, check_date=MONDAY) == []
    assert len(await list_conflicts(db_session, check_date=TUESDAY)) == 1

    parked = await batch_runner.list_dlq(db_session, DLQStatus.FAILED)
    assert len(parked) == 1
    assert parked[0].payload == {"date": "2025-03-03"}
    assert "detector crashed" in parked[0].error_message


@pytest.mark.asyncio
async def test_retry_succeeds_once_the_cause_is_gone(db_session, double_booked, monday_fails, mocker):
    result = await batch_runner.run_daily_pass(db_session, [MONDAY], run_suggestions=False)
    dlq_id = result.failures[0].dlq_id

    mocker.stopall()
    item = await batch_runner.retry_dlq_item(db_session, dlq_id)

    assert item.status == DLQStatus.PROCESSED
    assert item.retry_count == 1
    assert len(await list_conflicts(db_session, check_date=MONDAY)) == 1

    with pytest.raises(InvalidStateError):
        await batch_runner.retry_dlq_item(db_session, dlq_id)


@pytest.mark.asyncio
async def test_retry_gives_up_after_max_retries(db_session, double_booked, monday_fails):
    result = await batch_runner.run_daily_pass(db_session, [MONDAY], run_suggestions=False)
    dlq_id = result.failures[0].dlq_id

    statuses = []
    for _ in range(batch_runner.MAX_RETRIES):
        item = await batch_runner.retry_dlq_item(db_session, dlq_id)
        statuses.append(item.status)

    assert statuses[:-1] == [DLQStatus.FAILED] * (batch_runner.MAX_RETRIES - 1)
    assert statuses[-1] == DLQStatus.ARCHIVED


@pytest.mark.asyncio
async def test_scheduled_jobs_cover_tomorrow(db_session, double_booked):
    result = await batch_runner.run_scheduled_jobs(db_session, now=datetime(2025, 3, 2, 6, 0))

    assert result.dates_processed == [MONDAY]
    assert result.failures == []
    assert len(await list_conflicts(db_session, check_date=MONDAY)) == 1
