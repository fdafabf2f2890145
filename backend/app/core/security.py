"""
PIN and password hashing.
"""

import bcrypt


def get_password_hash(secret: str) -> str:
    """Hash a PIN or password with a fresh salt."""
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(secret: str, hashed: str) -> bool:
    """Check a PIN or password against its stored hash."""
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False
