"""Password hashing and one-time account tokens."""

from datetime import datetime, timedelta, timezone
import hmac
import logging
import secrets
from typing import Optional

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes.
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError as exc:
        logger.error("Error verifying password: %s", exc)
        return False


def new_account_token() -> str:
    return secrets.token_urlsafe(32)


def token_expiry(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=max(int(minutes), 1))


def constant_time_equals(left: str, right: str) -> bool:
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))
