"""
Token Revocation System using Redis.

Blocking an account must end its sessions immediately, not when its JWT
expires. Two kinds of flags are kept, both expiring with the longest-lived
token they could cover (keys are namespaced by `redis_key`):

- token:<jwt>               one revoked token (logout)
- account:<id>:revoked      every token of a blocked account
"""

import logging
from backend.app.core import redis_client as redis_module
from backend.app.core.redis_client import redis_key
from backend.app.core.config import settings

logger = logging.getLogger(__name__)


def _ttl_seconds() -> int:
    return settings.access_token_expire_minutes * 60


def _account_key(account_id: int) -> str:
    return redis_key("account", account_id, "revoked")


async def revoke_token(token: str, account_id: int) -> bool:
    """
    Revoke a single JWT (logout).

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        await redis_module.redis_client.setex(redis_key("token", token), _ttl_seconds(), str(account_id))
        return True
    except Exception:
        logger.exception("Error revoking token for account %s", account_id)
        return False


async def is_token_revoked(token: str) -> bool:
    try:
        return await redis_module.redis_client.exists(redis_key("token", token)) > 0
    except Exception:
        # Redis down: the database is_blocked check still guards every request
        logger.exception("Error checking token revocation")
        return False


async def revoke_all_account_tokens(account_id: int) -> bool:
    """
    Revoke all active tokens for an account.

    Called when an admin blocks the account.
    """
    try:
        await redis_module.redis_client.setex(_account_key(account_id), _ttl_seconds(), "1")
        logger.info("Revoked all sessions of account %s", account_id)
        return True
    except Exception:
        logger.exception("Error revoking all tokens for account %s", account_id)
        return False


async def are_account_tokens_revoked(account_id: int) -> bool:
    try:
        return await redis_module.redis_client.exists(_account_key(account_id)) > 0
    except Exception:
        logger.exception("Error checking token revocation for account %s", account_id)
        return False


async def clear_account_token_revocation(account_id: int) -> bool:
    """
    Clear the revocation flag for an account.

    Called when a blocked account is unblocked.
    """
    try:
        await redis_module.redis_client.delete(_account_key(account_id))
        return True
    except Exception:
        logger.exception("Error clearing token revocation for account %s", account_id)
        return False
