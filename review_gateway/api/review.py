"""
Reviewer API Routes: the token in the path is the only credential.

GET  /review/{token}           - application context for the review page
POST /review/{token}/decision  - approve or deny, exactly once per token

Expired, superseded and already used links all answer 410 with the same
message so the page can show a single "no longer available" state.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from ..core import StoreDep
from ..core.clock import as_utc
from ..core.errors import (
    ApplicationNotFoundError,
    ApplicationNotReviewableError,
    RecordStoreTimeoutError,
    TokenConsumedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from ..core.security import mask_token
from ..models import Application, ApplicationStatus, Package, Requester, Reviewer
from ..schemas import (
    DecisionRequest,
    DecisionResponse,
    ReviewApplication,
    ReviewContextResponse,
    ReviewPackage,
    ReviewRequester,
    ReviewReviewer,
)
from ..services import (
    DecisionProcessor,
    DocumentGenerator,
    Notifier,
    TokenService,
    get_document_generator,
    get_notifier,
)
from .errors import http_error, review_not_found, review_unavailable, store_unavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/review", tags=["review"])

NotifierDep = Annotated[Notifier, Depends(get_notifier)]
DocumentGeneratorDep = Annotated[DocumentGenerator, Depends(get_document_generator)]


@router.get("/{token}", response_model=ReviewContextResponse)
async def get_review_context(token: str, store: StoreDep):
    """Load what the reviewer needs to decide. Does not consume the token."""
    try:
        review_token = await TokenService(store).validate(token)
    except TokenNotFoundError:
        raise review_not_found()
    except (TokenExpiredError, TokenConsumedError):
        logger.info(f"Unavailable review link opened: {mask_token(token)}")
        raise review_unavailable()
    except RecordStoreTimeoutError as e:
        raise store_unavailable(str(e))

    application = await store.get(Application, review_token.application_id)
    if application is None:
        raise review_not_found()
    if application.status != ApplicationStatus.IN_REVIEW:
        # Decided or withdrawn while the link was still open
        logger.info(f"Review link {mask_token(token)} opened for a closed application")
        raise review_unavailable()

    requester = await store.get(Requester, application.requester_id)
    package = await store.get(Package, application.package_id)
    reviewer = await store.get(Reviewer, review_token.reviewer_id)

    return ReviewContextResponse(
        application=ReviewApplication.model_validate(application),
        requester=ReviewRequester.model_validate(requester) if requester else None,
        package=ReviewPackage.model_validate(package) if package else None,
        reviewer=ReviewReviewer.model_validate(reviewer) if reviewer else None,
        expires_at=as_utc(review_token.expires_at),
    )


@router.post("/{token}/decision", response_model=DecisionResponse)
async def submit_decision(
    token: str,
    request: DecisionRequest,
    store: StoreDep,
    documents: DocumentGeneratorDep,
    notifier: NotifierDep,
):
    """
    Record the reviewer's decision.

    Document generation and notifications run after the decision is stored;
    their failures are queued for follow-up and never change this response.
    """
    processor = DecisionProcessor(store, documents, notifier)
    try:
        outcome = await processor.submit_decision(token, request.decision, request.notes)
    except TokenNotFoundError:
        raise review_not_found()
    except (TokenExpiredError, TokenConsumedError):
        raise review_unavailable()
    except ApplicationNotFoundError:
        raise review_not_found()
    except ApplicationNotReviewableError:
        raise http_error(
            status.HTTP_409_CONFLICT,
            "not_reviewable",
            "This application is no longer awaiting review.",
        )
    except RecordStoreTimeoutError as e:
        raise store_unavailable(str(e))

    return DecisionResponse(
        decision=outcome.decision,
        decided_at=outcome.decided_at,
        status=outcome.status,
    )
