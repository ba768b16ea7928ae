"""Security utilities: staff authentication and review token primitives."""

from datetime import datetime, timedelta, timezone
from enum import IntEnum
import hmac
import logging
import secrets

import jwt
from pydantic import BaseModel

from .config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class StaffLevel(IntEnum):
    """User levels of the surrounding product. Higher levels include lower ones."""

    APPLICANT = 1
    REVIEWER = 2
    AGENT = 3
    ADMIN = 4
    OWNER = 5


# JWT Token handling
class TokenPayload(BaseModel):
    """JWT token payload for staff sessions."""

    sub: str  # Staff user ID
    level: int = StaffLevel.APPLICANT
    exp: datetime
    iat: datetime
    type: str = "access"


def create_access_token(
    user_id: str,
    level: StaffLevel,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token for a staff member."""
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )

    payload = {
        "sub": str(user_id),
        "level": int(level),
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    return jwt.encode(payload, settings.secret_key, algorithm="HS256")


def decode_token(token: str) -> TokenPayload | None:
    """Decode and validate a staff JWT."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=["HS256"])
        return TokenPayload(**payload)
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


# Review tokens are opaque random strings, never derived from ids or timestamps.
def generate_review_token(num_bytes: int | None = None) -> str:
    """Create a URL-safe review token with at least 256 bits of entropy."""
    num_bytes = max(num_bytes or settings.review_token_bytes, 32)
    return secrets.token_urlsafe(num_bytes)


def tokens_match(presented: str, stored: str) -> bool:
    """Constant-time comparison of a presented token against a stored one."""
    return hmac.compare_digest(presented.encode(), stored.encode())


def mask_token(token: str) -> str:
    """Shorten a token for log output."""
    return f"{token[:6]}..." if token else "<empty>"
