"""Core application utilities."""

from .clock import as_utc, utc_now
from .config import Settings, get_settings
from .database import (
    async_session_factory,
    close_db,
    engine,
    get_session,
    init_db,
)
from .dependencies import (
    AdminDep,
    AgentDep,
    CurrentStaff,
    CurrentStaffDep,
    StoreDep,
    get_current_staff,
    get_store,
    require_admin,
    require_agent,
)
from .security import (
    StaffLevel,
    create_access_token,
    decode_token,
    generate_review_token,
    tokens_match,
)
from .store import RecordStore

__all__ = [
    # Clock
    "utc_now",
    "as_utc",
    # Config
    "Settings",
    "get_settings",
    # Database
    "engine",
    "async_session_factory",
    "get_session",
    "init_db",
    "close_db",
    # Store
    "RecordStore",
    # Dependencies
    "CurrentStaff",
    "get_current_staff",
    "get_store",
    "require_agent",
    "require_admin",
    "CurrentStaffDep",
    "AgentDep",
    "AdminDep",
    "StoreDep",
    # Security
    "StaffLevel",
    "create_access_token",
    "decode_token",
    "generate_review_token",
    "tokens_match",
]
