"""SQLAlchemy ORM Models for Review Gateway."""

from .base import Base, TimestampMixin, UUIDMixin
from .models import (
    # Enums
    ApplicationStatus,
    AuditAction,
    EffectKind,
    ReviewDecision,
    TokenStatus,
    # Context
    Package,
    Requester,
    # Workflow
    Application,
    AssignmentPointer,
    Reviewer,
    ReviewToken,
    # Audit & follow-up
    AuditLog,
    EffectFailure,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    # Enums
    "ApplicationStatus",
    "TokenStatus",
    "ReviewDecision",
    "AuditAction",
    "EffectKind",
    # Context
    "Requester",
    "Package",
    # Workflow
    "Application",
    "Reviewer",
    "AssignmentPointer",
    "ReviewToken",
    # Audit & follow-up
    "AuditLog",
    "EffectFailure",
]
