"""
Password hashing and verification.

Uses bcrypt with automatic salting; the work factor comes from
``Settings.BCRYPT_WORK_FACTOR``.
"""

from functools import lru_cache

import bcrypt

# bcrypt only looks at this many bytes; newer releases reject longer input
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, work_factor: int) -> str:
    """Hash a password with bcrypt at the given cost."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=work_factor)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison against a bcrypt hash. Never raises."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError, AttributeError):
        return False


@lru_cache(maxsize=None)
def dummy_hash(work_factor: int) -> str:
    """Hash checked against when a username does not exist, so both paths cost the same."""
    return hash_password("not-a-real-password", work_factor)
