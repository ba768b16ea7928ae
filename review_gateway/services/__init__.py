"""Business logic services for the review workflow."""

from ..core.errors import (
    ActiveTokenExistsError,
    ApplicationNotFoundError,
    ApplicationNotReviewableError,
    AssignmentConflictError,
    ConcurrencyError,
    DocumentGenerationError,
    IllegalTransitionError,
    InvalidOperationError,
    NoEligibleReviewerError,
    NotFoundError,
    NotificationError,
    RecordNotFoundError,
    RecordStoreTimeoutError,
    ReviewerNotFoundError,
    ReviewGatewayError,
    StaleStateError,
    TokenConsumedError,
    TokenError,
    TokenExpiredError,
    TokenNotFoundError,
)
from .assignment import AssignmentScheduler, select_next_reviewer
from .audit import AuditService
from .decisions import ApplicationOutcome, DecisionProcessor
from .dispatch import Dispatch, ReviewDispatcher, build_review_url
from .effects import (
    DocumentGenerator,
    HttpDocumentGenerator,
    LoggingDocumentGenerator,
    LoggingNotifier,
    Notifier,
    WebhookNotifier,
    get_document_generator,
    get_notifier,
)
from .followups import FollowUpService
from .tokens import TokenService
from .workflow import ALLOWED_TRANSITIONS, WorkflowEngine, can_transition, is_terminal

__all__ = [
    # Workflow
    "WorkflowEngine",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "is_terminal",
    # Assignment
    "AssignmentScheduler",
    "select_next_reviewer",
    # Tokens
    "TokenService",
    # Decisions
    "DecisionProcessor",
    "ApplicationOutcome",
    # Dispatch
    "ReviewDispatcher",
    "Dispatch",
    "build_review_url",
    # Effects
    "DocumentGenerator",
    "Notifier",
    "HttpDocumentGenerator",
    "WebhookNotifier",
    "LoggingDocumentGenerator",
    "LoggingNotifier",
    "get_document_generator",
    "get_notifier",
    "FollowUpService",
    "AuditService",
    # Errors
    "ReviewGatewayError",
    "NotFoundError",
    "ApplicationNotFoundError",
    "ReviewerNotFoundError",
    "RecordNotFoundError",
    "TokenError",
    "TokenNotFoundError",
    "TokenExpiredError",
    "TokenConsumedError",
    "ConcurrencyError",
    "StaleStateError",
    "AssignmentConflictError",
    "ActiveTokenExistsError",
    "InvalidOperationError",
    "IllegalTransitionError",
    "ApplicationNotReviewableError",
    "NoEligibleReviewerError",
    "RecordStoreTimeoutError",
    "DocumentGenerationError",
    "NotificationError",
]
