"""Exception hierarchy for the review workflow.

Four families, each handled differently by callers:

- capability errors (``TokenError``): terminal for the presented token,
  shown to the reviewer as "no longer available", never retried.
- state conflicts (``ConcurrencyError``): another request won a race;
  re-read fresh state and decide whether the original intent still holds.
- resource unavailability (``NoEligibleReviewerError``,
  ``RecordStoreTimeoutError``): operational errors surfaced to staff.
- downstream effect failures (``EffectError``): recorded for follow-up
  after a decision is committed, never rolled back into it.
"""


class ReviewGatewayError(Exception):
    """Base exception for workflow operations."""
    pass


# =============================================================================
# LOOKUPS
# =============================================================================


class NotFoundError(ReviewGatewayError):
    """Requested record does not exist."""
    pass


class ApplicationNotFoundError(NotFoundError):
    pass


class ReviewerNotFoundError(NotFoundError):
    pass


class RecordNotFoundError(NotFoundError):
    """A context record (requester, package) does not exist."""
    pass


# =============================================================================
# CAPABILITY (REVIEW TOKEN) ERRORS
# =============================================================================


class TokenError(ReviewGatewayError):
    """The presented review token cannot be used."""
    pass


class TokenNotFoundError(TokenError):
    """No token with this value exists."""
    pass


class TokenExpiredError(TokenError):
    """Token is past its expiry or was superseded by a re-send."""
    pass


# =============================================================================
# STATE CONFLICTS
# =============================================================================


class ConcurrencyError(ReviewGatewayError):
    """Concurrent modification detected."""
    pass


class TokenConsumedError(TokenError, ConcurrencyError):
    """Token was already used to submit a decision."""
    pass


class StaleStateError(ConcurrencyError):
    """Stored status differs from the expected one."""

    def __init__(self, application_id, expected, actual):
        self.application_id = application_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Application {application_id} is {_value(actual)}, "
            f"expected {_value(expected)}"
        )


class AssignmentConflictError(ConcurrencyError):
    """Assignment pointer kept changing under us."""
    pass


class ActiveTokenExistsError(ConcurrencyError):
    """Application already has an active review token."""
    pass


class RecordConflictError(ConcurrencyError):
    """Insert collided with an existing record."""
    pass


# =============================================================================
# INVALID OPERATIONS
# =============================================================================


class InvalidOperationError(ReviewGatewayError):
    """Operation not allowed in current state."""
    pass


class IllegalTransitionError(InvalidOperationError):
    def __init__(self, from_status, to_status):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Transition {_value(from_status)} -> {_value(to_status)} is not allowed"
        )


class ApplicationNotReviewableError(InvalidOperationError):
    """Application is not in a status that accepts this review action."""
    pass


# =============================================================================
# RESOURCE UNAVAILABILITY
# =============================================================================


class NoEligibleReviewerError(ReviewGatewayError):
    """No active reviewer can receive the application."""
    pass


class RecordStoreTimeoutError(ReviewGatewayError):
    """A record store call exceeded its timeout."""
    pass


# =============================================================================
# DOWNSTREAM EFFECTS
# =============================================================================


class EffectError(ReviewGatewayError):
    pass


class DocumentGenerationError(EffectError):
    pass


class NotificationError(EffectError):
    pass


def _value(status) -> str:
    return getattr(status, "value", str(status))
