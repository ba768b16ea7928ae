"""Schemas for staff-facing application, reviewer and context endpoints."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from ..models import ApplicationStatus
from .base import GatewayBaseModel


# =============================================================================
# CONTEXT RECORDS
# =============================================================================


class RequesterCreate(GatewayBaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = Field(default=None, max_length=50)
    date_of_birth: str | None = Field(default=None, max_length=20)
    address: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    zip_code: str | None = Field(default=None, max_length=20)


class RequesterResponse(RequesterCreate):
    id: UUID
    email: str


class PackageCreate(GatewayBaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


class PackageResponse(PackageCreate):
    id: UUID


# =============================================================================
# REVIEWERS
# =============================================================================


class ReviewerCreate(GatewayBaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    specialty: str | None = Field(default=None, max_length=255)
    is_active: bool = True


class ReviewerUpdate(GatewayBaseModel):
    """Partial update. Only the provided fields change."""
    is_active: bool | None = None
    specialty: str | None = Field(default=None, max_length=255)

    @field_validator("is_active")
    @classmethod
    def validate_is_active(cls, v: bool | None) -> bool:
        # Omit the field to leave it unchanged; the column is not nullable
        if v is None:
            raise ValueError("is_active must be true or false")
        return v


class ReviewerResponse(GatewayBaseModel):
    id: UUID
    first_name: str
    last_name: str
    email: str
    specialty: str | None = None
    is_active: bool
    last_assigned_at: datetime | None = None


# =============================================================================
# APPLICATIONS
# =============================================================================


class ApplicationCreate(GatewayBaseModel):
    requester_id: UUID
    package_id: UUID
    form_data: dict[str, Any] = Field(default_factory=dict)


class ApplicationResponse(GatewayBaseModel):
    id: UUID
    requester_id: UUID
    package_id: UUID
    status: ApplicationStatus
    form_data: dict[str, Any] = Field(default_factory=dict)
    review_notes: str | None = None
    processing_notes: str | None = None
    assigned_reviewer_id: UUID | None = None
    decided_at: datetime | None = None
    document_id: str | None = None
    completed_at: datetime | None = None
    created_at: datetime


class SendToReviewRequest(GatewayBaseModel):
    reviewer_id: UUID | None = Field(
        default=None,
        description="Send to this reviewer instead of the next one in rotation",
    )


class SendToReviewResponse(GatewayBaseModel):
    token: str
    review_url: str
    reviewer: ReviewerResponse
    expires_at: datetime


class RejectRequest(GatewayBaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class NoteCreate(GatewayBaseModel):
    kind: Literal["review", "processing"] = "processing"
    text: str = Field(..., min_length=1, max_length=5000)


class OutcomeResponse(GatewayBaseModel):
    application_id: UUID
    decision: str
    status: ApplicationStatus
    decided_at: datetime | None = None
    completed_at: datetime | None = None
    document_id: str | None = None
