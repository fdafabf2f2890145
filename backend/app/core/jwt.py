"""
JWT access tokens.

A token names the account (id, 5-digit public ID, username) and its role.
It is only a bearer credential: every request re-reads the account row, so
blocking takes effect before the token expires.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backend.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign `data` with an expiry and a unique token id.

    Example payload:
        {
            "sub": "alice",
            "account_id": 123,
            "public_id": "48213",
            "role": "USER",
            "exp": 1234567890,
            "jti": "9f1c..."
        }
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    # jti keeps two tokens issued in the same second distinct for logout
    claims = {**data, "exp": expire, "jti": uuid.uuid4().hex}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def create_account_token(account) -> str:
    """Token for an Account row."""
    return create_access_token({
        "sub": account.username,
        "account_id": account.id,
        "public_id": account.public_id,
        "role": account.role.value,
    })


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Verified claims, or None if the signature or expiry check fails."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
