"""Redis cache for aggregated results."""
import json
import logging
from typing import List, Optional

import redis.asyncio as redis

from services.shared import CategoryResult
from .config import settings

logger = logging.getLogger(__name__)


class ResultsCache:
    """
    Caches get_results output per category slug for a short TTL.

    Entries are dropped when a ballot is finalized or an admin changes a
    category or nominee; the TTL bounds staleness from any other writer.
    """

    def __init__(self, url: Optional[str] = None, ttl: Optional[int] = None):
        self.url = url or settings.redis_url
        self.ttl = ttl if ttl is not None else settings.RESULTS_CACHE_TTL
        self.client: Optional[redis.Redis] = None

    async def initialize(self):
        """Connect and verify the Redis connection."""
        self.client = redis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True
        )
        await self.client.ping()
        logger.info("Redis connection established")

    @staticmethod
    def _key(category_slug: Optional[str]) -> str:
        return f"results:{category_slug or 'all'}"

    async def get(self, category_slug: Optional[str]) -> Optional[List[CategoryResult]]:
        """Cached results, or None on a miss or a Redis error."""
        try:
            raw = await self.client.get(self._key(category_slug))
        except redis.RedisError as e:
            logger.error(f"Redis error reading results cache: {e}")
            return None
        if raw is None:
            return None
        return [CategoryResult.from_dict(item) for item in json.loads(raw)]

    async def set(self, category_slug: Optional[str], results: List[CategoryResult]) -> None:
        try:
            await self.client.set(
                self._key(category_slug),
                json.dumps([r.to_dict() for r in results]),
                ex=self.ttl
            )
        except redis.RedisError as e:
            logger.error(f"Redis error writing results cache: {e}")

    async def invalidate(self) -> None:
        """Drop every cached results entry."""
        try:
            keys = [key async for key in self.client.scan_iter(match="results:*")]
            if keys:
                await self.client.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"Redis error invalidating results cache: {e}")

    async def check_health(self) -> bool:
        try:
            await self.client.ping()
            return True
        except Exception as e:
            logger.error(f"Redis health check error: {e}")
            return False

    async def close(self):
        try:
            if self.client:
                await self.client.close()
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
