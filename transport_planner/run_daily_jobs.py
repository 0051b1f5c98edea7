"""
Daily scheduler entry point.

Runs conflict detection and suggestion generation for the coming days,
expires unanswered support offers and sends departure reminders. Meant to
be invoked from cron; exits non-zero when any date failed.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from transport_planner.app.core.observability import configure_logging
from transport_planner.app.db.session import AsyncSessionLocal
from transport_planner.app.main import app  # noqa: F401  registers every model
from transport_planner.app.services.batch_runner import run_scheduled_jobs

logger = logging.getLogger("transport_planner.jobs")


async def main() -> int:
    configure_logging()
    async with AsyncSessionLocal() as db:
        result = await run_scheduled_jobs(db)

    for failure in result.failures:
        logger.error(
            "%s failed for %s (dlq=%s): %s",
            failure.task_name, failure.target_date, failure.dlq_id, failure.error
        )
    return 1 if result.failures else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
