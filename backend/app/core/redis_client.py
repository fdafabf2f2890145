"""
Redis client for session revocation.

Redis only holds short-lived session state (revoked tokens, blocked
accounts). Balances, plans and the ledger live in the database, so the
platform keeps serving when Redis is down; revocation checks then fall
back to the database `is_blocked` flag.
"""

import logging
import redis.asyncio as redis
from backend.app.core.config import settings

logger = logging.getLogger(__name__)


redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


def redis_key(*parts) -> str:
    """Namespaced key, e.g. redis_key("account", 7, "revoked") -> "invest:account:7:revoked"."""
    return ":".join([settings.redis_key_prefix, *(str(part) for part in parts)])


async def ping_redis() -> bool:
    """True if Redis answers; reported by /health."""
    try:
        return bool(await redis_client.ping())
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return False


async def close_redis() -> None:
    try:
        await redis_client.aclose()
    except Exception:
        logger.warning("Error closing Redis connection", exc_info=True)
