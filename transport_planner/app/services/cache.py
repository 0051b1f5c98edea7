"""
Occurrence cache.

Memoizes materialized occurrence windows in Redis. Entries are keyed by a
generation counter that every template or override mutation bumps, so
invalidation is one INCR and stale entries simply age out.
"""

import json
import logging
from datetime import date
from typing import List, Optional

from redis.exceptions import RedisError

from transport_planner.app.core.config import settings
from transport_planner.app.core.redis_client import get_redis
from transport_planner.app.schemas.occurrence import ScheduleOccurrence

logger = logging.getLogger(__name__)

GENERATION_KEY = "occurrences:generation"


class OccurrenceCache:

    @staticmethod
    async def _generation(client) -> str:
        return str(await client.get(GENERATION_KEY) or 0)

    @staticmethod
    def _window_key(generation: str, start: date, end: date) -> str:
        return f"occurrences:{generation}:{start.isoformat()}:{end.isoformat()}"

    @staticmethod
    async def current_generation() -> Optional[str]:
        """
        Generation to read and write one window under. Read it before
        computing; a mutation committed meanwhile bumps the counter and the
        entry written under the old generation is never served.
        Returns None when caching is off or Redis is unreachable.
        """
        if not settings.occurrence_cache_enabled:
            return None
        try:
            client = await get_redis()
            return await OccurrenceCache._generation(client)
        except RedisError as exc:
            logger.warning("Occurrence cache read failed, computing directly: %s", exc)
            return None

    @staticmethod
    async def get(generation: str, start: date, end: date) -> Optional[List[ScheduleOccurrence]]:
        try:
            client = await get_redis()
            raw = await client.get(OccurrenceCache._window_key(generation, start, end))
        except RedisError as exc:
            logger.warning("Occurrence cache read failed, computing directly: %s", exc)
            return None

        if raw is None:
            return None
        return [ScheduleOccurrence.model_validate(item) for item in json.loads(raw)]

    @staticmethod
    async def set(generation: str, start: date, end: date, occurrences: List[ScheduleOccurrence]) -> None:
        payload = json.dumps([o.model_dump(mode="json") for o in occurrences])
        try:
            client = await get_redis()
            await client.set(
                OccurrenceCache._window_key(generation, start, end),
                payload,
                ex=settings.occurrence_cache_ttl_seconds,
            )
        except RedisError as exc:
            logger.warning("Occurrence cache write skipped: %s", exc)

    @staticmethod
    async def invalidate() -> None:
        """Called after any template or override mutation is committed."""
        try:
            client = await get_redis()
            await client.incr(GENERATION_KEY)
        except RedisError as exc:
            # Entries still expire through their TTL
            logger.warning("Occurrence cache invalidation failed: %s", exc)
