"""Schemas for the reviewer-facing (token authenticated) endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from ..models import ApplicationStatus, ReviewDecision
from .base import GatewayBaseModel


class ReviewApplication(GatewayBaseModel):
    id: UUID
    status: ApplicationStatus
    form_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ReviewRequester(GatewayBaseModel):
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    date_of_birth: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None


class ReviewPackage(GatewayBaseModel):
    name: str
    description: str | None = None


class ReviewReviewer(GatewayBaseModel):
    first_name: str
    last_name: str
    specialty: str | None = None


class ReviewContextResponse(GatewayBaseModel):
    """Everything the review page shows. Requester/package may be missing."""
    application: ReviewApplication
    requester: ReviewRequester | None = None
    package: ReviewPackage | None = None
    reviewer: ReviewReviewer | None = None
    expires_at: datetime


class DecisionRequest(GatewayBaseModel):
    decision: ReviewDecision
    notes: str | None = Field(default=None, max_length=5000)


class DecisionResponse(GatewayBaseModel):
    decision: ReviewDecision
    decided_at: datetime
    status: ApplicationStatus
