"""Translation of workflow errors into HTTP responses."""

from fastapi import HTTPException, status

REVIEW_UNAVAILABLE_MESSAGE = "This review is no longer available."
NO_REVIEWERS_MESSAGE = "No reviewers are available. Activate a reviewer and try again."


def http_error(status_code: int, error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": error, "message": message},
    )


def review_unavailable() -> HTTPException:
    """Shown to reviewers for expired, superseded or already decided links."""
    return http_error(status.HTTP_410_GONE, "review_unavailable", REVIEW_UNAVAILABLE_MESSAGE)


def review_not_found() -> HTTPException:
    return http_error(status.HTTP_404_NOT_FOUND, "review_not_found", "Review link not found.")


def no_reviewers_available() -> HTTPException:
    return http_error(status.HTTP_409_CONFLICT, "no_reviewers_available", NO_REVIEWERS_MESSAGE)


def store_unavailable(message: str) -> HTTPException:
    return http_error(status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable", message)
