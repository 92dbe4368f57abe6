"""
Shared async Redis connection - worker heartbeats, locks, alert cooldowns.
"""
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# Redis client (lazily initialized)
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from lawdesk.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def write_heartbeat(worker_name: str, ttl: int = 300) -> None:
    """Store a worker heartbeat timestamp. Never raises."""
    try:
        redis = await get_redis()
        await redis.set(
            f"lawdesk:worker_health:{worker_name}",
            datetime.now(timezone.utc).isoformat(),
            ex=ttl,
        )
    except Exception as e:
        logger.debug("Heartbeat write failed for %s: %s", worker_name, str(e))
