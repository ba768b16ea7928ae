"""
Application API Routes: staff endpoints driving the review workflow.

1. POST /applications/{id}/send-to-review - assign a reviewer and mint a review link
2. POST /applications/{id}/resend-review - replace the review link
3. POST /applications/{id}/reject - administrative override
4. POST /applications/{id}/retry-documents - manual follow-up after approval
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from ..core import AdminDep, AgentDep, StoreDep
from ..core.errors import (
    ActiveTokenExistsError,
    ApplicationNotFoundError,
    ApplicationNotReviewableError,
    AssignmentConflictError,
    IllegalTransitionError,
    InvalidOperationError,
    NoEligibleReviewerError,
    RecordNotFoundError,
    RecordStoreTimeoutError,
    ReviewerNotFoundError,
    StaleStateError,
)
from ..models import Application, ApplicationStatus
from ..schemas import (
    ApplicationCreate,
    ApplicationResponse,
    NoteCreate,
    OutcomeResponse,
    PaginatedResponse,
    PaginationParams,
    RejectRequest,
    ReviewerResponse,
    SendToReviewRequest,
    SendToReviewResponse,
)
from ..services import (
    DecisionProcessor,
    Dispatch,
    DocumentGenerator,
    Notifier,
    ReviewDispatcher,
    WorkflowEngine,
    get_document_generator,
    get_notifier,
)
from .errors import http_error, no_reviewers_available, store_unavailable

router = APIRouter(prefix="/applications", tags=["applications"])

NotifierDep = Annotated[Notifier, Depends(get_notifier)]
DocumentGeneratorDep = Annotated[DocumentGenerator, Depends(get_document_generator)]


def application_not_found(application_id: UUID):
    return http_error(
        status.HTTP_404_NOT_FOUND,
        "application_not_found",
        f"Application {application_id} not found",
    )


def dispatch_response(dispatch: Dispatch) -> SendToReviewResponse:
    return SendToReviewResponse(
        token=dispatch.token.token,
        review_url=dispatch.review_url,
        reviewer=ReviewerResponse.model_validate(dispatch.reviewer),
        expires_at=dispatch.token.expires_at,
    )


# =============================================================================
# CRUD
# =============================================================================


@router.post("", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def create_application(
    request: ApplicationCreate,
    current_staff: AgentDep,
    store: StoreDep,
):
    """Create a pending application for an existing requester and package."""
    try:
        application = await WorkflowEngine(store).create_application(
            request.requester_id, request.package_id, request.form_data
        )
    except RecordNotFoundError as e:
        raise http_error(status.HTTP_404_NOT_FOUND, "record_not_found", str(e))
    except RecordStoreTimeoutError as e:
        raise store_unavailable(str(e))
    return ApplicationResponse.model_validate(application)


@router.get("", response_model=PaginatedResponse)
async def list_applications(
    current_staff: AgentDep,
    store: StoreDep,
    pagination: Annotated[PaginationParams, Depends()],
    status_filter: ApplicationStatus | None = Query(
        default=None, alias="status", description="Filter by status"
    ),
):
    """List applications, newest first."""
    criteria = []
    if status_filter is not None:
        criteria.append(Application.status == status_filter)

    applications = await store.query(
        Application,
        *criteria,
        order_by=Application.created_at.desc(),
        limit=pagination.page_size,
        offset=pagination.offset,
    )
    return PaginatedResponse(
        items=[ApplicationResponse.model_validate(a) for a in applications],
        page=pagination.page,
        page_size=pagination.page_size,
    )


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: UUID,
    current_staff: AgentDep,
    store: StoreDep,
):
    application = await store.get(Application, application_id)
    if application is None:
        raise application_not_found(application_id)
    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/notes", response_model=ApplicationResponse)
async def add_note(
    application_id: UUID,
    request: NoteCreate,
    current_staff: AgentDep,
    store: StoreDep,
):
    """Append a staff note. Status is not affected."""
    try:
        application = await WorkflowEngine(store).append_note(
            application_id, request.kind, request.text, current_staff.actor
        )
    except ApplicationNotFoundError:
        raise application_not_found(application_id)
    return ApplicationResponse.model_validate(application)


# =============================================================================
# REVIEW DISPATCH
# =============================================================================


@router.post(
    "/{application_id}/send-to-review",
    response_model=SendToReviewResponse,
    summary="Send an application to a reviewer",
    description="""
    Picks the next active reviewer in round-robin order (or the reviewer given
    in the body), moves the application to `in_review` and returns a single-use
    review link valid for seven days.
    """,
)
async def send_to_review(
    application_id: UUID,
    current_staff: AdminDep,
    store: StoreDep,
    notifier: NotifierDep,
    request: SendToReviewRequest | None = None,
):
    dispatcher = ReviewDispatcher(store, notifier)
    try:
        dispatch = await dispatcher.send_to_review(
            application_id,
            current_staff.actor,
            reviewer_id=request.reviewer_id if request else None,
        )
    except ApplicationNotFoundError:
        raise application_not_found(application_id)
    except ReviewerNotFoundError as e:
        raise http_error(status.HTTP_404_NOT_FOUND, "reviewer_not_found", str(e))
    except NoEligibleReviewerError:
        raise no_reviewers_available()
    except (ApplicationNotReviewableError, StaleStateError) as e:
        raise http_error(status.HTTP_409_CONFLICT, "already_in_review", str(e))
    except (AssignmentConflictError, ActiveTokenExistsError) as e:
        raise http_error(status.HTTP_409_CONFLICT, "assignment_conflict", str(e))
    except RecordStoreTimeoutError as e:
        raise store_unavailable(str(e))

    return dispatch_response(dispatch)


@router.post("/{application_id}/resend-review", response_model=SendToReviewResponse)
async def resend_review(
    application_id: UUID,
    current_staff: AdminDep,
    store: StoreDep,
    notifier: NotifierDep,
):
    """Expire the outstanding review link and issue a new one to the same reviewer."""
    dispatcher = ReviewDispatcher(store, notifier)
    try:
        dispatch = await dispatcher.resend(application_id, current_staff.actor)
    except ApplicationNotFoundError:
        raise application_not_found(application_id)
    except ReviewerNotFoundError as e:
        raise http_error(status.HTTP_404_NOT_FOUND, "reviewer_not_found", str(e))
    except ApplicationNotReviewableError as e:
        raise http_error(status.HTTP_409_CONFLICT, "not_in_review", str(e))
    except ActiveTokenExistsError as e:
        raise http_error(status.HTTP_409_CONFLICT, "resend_conflict", str(e))
    except RecordStoreTimeoutError as e:
        raise store_unavailable(str(e))

    return dispatch_response(dispatch)


@router.post("/{application_id}/reject", response_model=ApplicationResponse)
async def reject_application(
    application_id: UUID,
    current_staff: AdminDep,
    store: StoreDep,
    notifier: NotifierDep,
    request: RejectRequest | None = None,
):
    """Administratively reject a pending or in-review application."""
    dispatcher = ReviewDispatcher(store, notifier)
    try:
        application = await dispatcher.reject(
            application_id,
            current_staff.actor,
            reason=request.reason if request else None,
        )
    except ApplicationNotFoundError:
        raise application_not_found(application_id)
    except (IllegalTransitionError, StaleStateError) as e:
        raise http_error(status.HTTP_409_CONFLICT, "invalid_transition", str(e))
    except RecordStoreTimeoutError as e:
        raise store_unavailable(str(e))

    return ApplicationResponse.model_validate(application)


@router.post("/{application_id}/retry-documents", response_model=OutcomeResponse)
async def retry_documents(
    application_id: UUID,
    current_staff: AdminDep,
    store: StoreDep,
    documents: DocumentGeneratorDep,
    notifier: NotifierDep,
):
    """Re-run document generation for an approved application."""
    processor = DecisionProcessor(store, documents, notifier)
    try:
        outcome = await processor.retry_documents(application_id, actor=current_staff.actor)
    except ApplicationNotFoundError:
        raise application_not_found(application_id)
    except InvalidOperationError as e:
        raise http_error(status.HTTP_409_CONFLICT, "not_approved", str(e))
    except RecordStoreTimeoutError as e:
        raise store_unavailable(str(e))

    return OutcomeResponse(
        application_id=outcome.application_id,
        decision=outcome.decision.value,
        status=outcome.status,
        decided_at=outcome.decided_at,
        completed_at=outcome.completed_at,
        document_id=outcome.document_id,
    )
