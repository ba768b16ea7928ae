"""Review Gateway API Schemas.

Schemas are organized by audience:
- base: common types, pagination, errors
- applications: staff endpoints (applications, reviewers, context records)
- review: token-authenticated reviewer endpoints
"""

from .applications import (
    ApplicationCreate,
    ApplicationResponse,
    NoteCreate,
    OutcomeResponse,
    PackageCreate,
    PackageResponse,
    RejectRequest,
    RequesterCreate,
    RequesterResponse,
    ReviewerCreate,
    ReviewerResponse,
    ReviewerUpdate,
    SendToReviewRequest,
    SendToReviewResponse,
)
from .base import (
    ErrorDetail,
    ErrorResponse,
    GatewayBaseModel,
    PaginatedResponse,
    PaginationParams,
)
from .review import (
    DecisionRequest,
    DecisionResponse,
    ReviewApplication,
    ReviewContextResponse,
    ReviewPackage,
    ReviewRequester,
    ReviewReviewer,
)

__all__ = [
    # Base
    "GatewayBaseModel",
    "PaginationParams",
    "PaginatedResponse",
    "ErrorDetail",
    "ErrorResponse",
    # Staff
    "ApplicationCreate",
    "ApplicationResponse",
    "NoteCreate",
    "OutcomeResponse",
    "PackageCreate",
    "PackageResponse",
    "RejectRequest",
    "RequesterCreate",
    "RequesterResponse",
    "ReviewerCreate",
    "ReviewerResponse",
    "ReviewerUpdate",
    "SendToReviewRequest",
    "SendToReviewResponse",
    # Reviewer
    "ReviewApplication",
    "ReviewRequester",
    "ReviewPackage",
    "ReviewReviewer",
    "ReviewContextResponse",
    "DecisionRequest",
    "DecisionResponse",
]
