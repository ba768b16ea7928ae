"""FastAPI dependencies for staff authentication and the record store.

Reviewer routes deliberately have no dependency here: the review token in
the URL is the only credential on that path.
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_session
from .security import StaffLevel, decode_token
from .store import RecordStore

logger = logging.getLogger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


class CurrentStaff:
    """Represents the authenticated staff member."""

    def __init__(self, user_id: str, level: int):
        self.user_id = user_id
        self.level = level

    @property
    def actor(self) -> str:
        return f"staff:{self.user_id}"

    @property
    def is_admin(self) -> bool:
        return self.level >= StaffLevel.ADMIN


async def get_current_staff(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> CurrentStaff:
    """Dependency to get the current staff member from the bearer JWT."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
        )

    return CurrentStaff(user_id=payload.sub, level=payload.level)


def require_agent(
    current_staff: Annotated[CurrentStaff, Depends(get_current_staff)],
) -> CurrentStaff:
    """Require agent level or above."""
    if current_staff.level < StaffLevel.AGENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff privileges required",
        )
    return current_staff


def require_admin(
    current_staff: Annotated[CurrentStaff, Depends(get_current_staff)],
) -> CurrentStaff:
    """Require admin or owner level."""
    if not current_staff.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_staff


def get_store(session: Annotated[AsyncSession, Depends(get_session)]) -> RecordStore:
    return RecordStore(session)


# Type aliases for cleaner dependency injection
CurrentStaffDep = Annotated[CurrentStaff, Depends(get_current_staff)]
AgentDep = Annotated[CurrentStaff, Depends(require_agent)]
AdminDep = Annotated[CurrentStaff, Depends(require_admin)]
StoreDep = Annotated[RecordStore, Depends(get_store)]
