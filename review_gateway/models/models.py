"""SQLAlchemy ORM Models for the review workflow."""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utc_now
from .base import Base, TimestampMixin, UUIDMixin


# =============================================================================
# ENUMS
# =============================================================================


class ApplicationStatus(str, PyEnum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    DENIED = "denied"
    COMPLETED = "completed"
    REJECTED = "rejected"  # Administrative override


class TokenStatus(str, PyEnum):
    ACTIVE = "active"
    CONSUMED = "consumed"
    EXPIRED = "expired"


class ReviewDecision(str, PyEnum):
    APPROVED = "approved"
    DENIED = "denied"


class AuditAction(str, PyEnum):
    TRANSITION = "transition"
    NOTE = "note"
    ASSIGN = "assign"
    ISSUE_TOKEN = "issue_token"
    EXPIRE_TOKEN = "expire_token"
    CONSUME_TOKEN = "consume_token"
    EFFECT_FAILED = "effect_failed"
    EFFECT_RESOLVED = "effect_resolved"


class EffectKind(str, PyEnum):
    DOCUMENT_GENERATION = "document_generation"
    NOTIFICATION = "notification"


def _enum(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])


# =============================================================================
# CONTEXT RECORDS (read by the review page)
# =============================================================================


class Requester(Base, UUIDMixin, TimestampMixin):
    """Customer who purchased a package and submitted an application."""

    __tablename__ = "requesters"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))
    date_of_birth: Mapped[str | None] = mapped_column(String(20))
    address: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(100))
    zip_code: Mapped[str | None] = mapped_column(String(20))


class Package(Base, UUIDMixin, TimestampMixin):
    """Purchasable service package."""

    __tablename__ = "packages"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)


# =============================================================================
# WORKFLOW RECORDS
# =============================================================================


class Application(Base, UUIDMixin, TimestampMixin):
    """One customer request moving through the review pipeline.

    ``status`` is only ever written through WorkflowEngine.transition.
    """

    __tablename__ = "applications"

    requester_id: Mapped[UUID] = mapped_column(
        ForeignKey("requesters.id"), nullable=False
    )
    package_id: Mapped[UUID] = mapped_column(
        ForeignKey("packages.id"), nullable=False
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        _enum(ApplicationStatus, "application_status"),
        default=ApplicationStatus.PENDING,
        nullable=False,
    )
    form_data: Mapped[dict[str, Any]] = mapped_column(default=dict)
    review_notes: Mapped[str | None] = mapped_column(Text)
    processing_notes: Mapped[str | None] = mapped_column(Text)

    # Set together with status=in_review, never cleared afterwards
    assigned_reviewer_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("reviewers.id"), nullable=True
    )
    decided_at: Mapped[datetime | None] = mapped_column()
    document_id: Mapped[str | None] = mapped_column(String(255))
    completed_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        Index("idx_applications_status", "status"),
        Index("idx_applications_reviewer", "assigned_reviewer_id"),
    )


class Reviewer(Base, UUIDMixin, TimestampMixin):
    """Licensed professional who decides applications through review links."""

    __tablename__ = "reviewers"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    specialty: Mapped[str | None] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_assigned_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        Index("idx_reviewers_active", "is_active"),
    )


class AssignmentPointer(Base):
    """Durable round-robin position. Only the scheduler writes it."""

    __tablename__ = "assignment_pointers"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    last_assigned_reviewer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(default=utc_now)


class ReviewToken(Base):
    """Single-use bearer credential for one application's review page."""

    __tablename__ = "review_tokens"

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    application_id: Mapped[UUID] = mapped_column(
        ForeignKey("applications.id"), nullable=False
    )
    reviewer_id: Mapped[UUID] = mapped_column(
        ForeignKey("reviewers.id"), nullable=False
    )
    status: Mapped[TokenStatus] = mapped_column(
        _enum(TokenStatus, "review_token_status"),
        default=TokenStatus.ACTIVE,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        Index("idx_review_tokens_application", "application_id", "status"),
        # At most one usable link per application, even under concurrent re-sends
        Index(
            "uq_review_tokens_one_active",
            "application_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


# =============================================================================
# AUDIT & FOLLOW-UP
# =============================================================================


class AuditLog(Base, UUIDMixin):
    """Append-only record of workflow actions."""

    __tablename__ = "audit_logs"

    action: Mapped[AuditAction] = mapped_column(
        _enum(AuditAction, "audit_action"), nullable=False
    )
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    actor: Mapped[str] = mapped_column(String(100), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_audit_logs_resource", "resource_type", "resource_id"),
    )


class EffectFailure(Base, UUIDMixin):
    """Downstream effect that failed after a decision was committed."""

    __tablename__ = "effect_failures"

    application_id: Mapped[UUID] = mapped_column(
        ForeignKey("applications.id"), nullable=False
    )
    effect: Mapped[EffectKind] = mapped_column(
        _enum(EffectKind, "effect_kind"), nullable=False
    )
    payload: Mapped[dict[str, Any]] = mapped_column(default=dict)
    last_error: Mapped[str | None] = mapped_column(Text)
    attempts: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        Index("idx_effect_failures_open", "effect", "resolved_at"),
    )
