"""Staff-side orchestration: hand applications to reviewers, re-send, reject."""

import logging
from dataclasses import dataclass
from uuid import UUID

from ..core.clock import Clock, utc_now
from ..core.config import get_settings
from ..core.errors import ApplicationNotReviewableError, ReviewerNotFoundError
from ..core.security import mask_token
from ..core.store import RecordStore
from ..models import Application, ApplicationStatus, EffectKind, Reviewer, ReviewToken
from .assignment import AssignmentScheduler
from .effects import Notifier
from .followups import FollowUpService
from .tokens import TokenService
from .workflow import WorkflowEngine

logger = logging.getLogger(__name__)


@dataclass
class Dispatch:
    """An application handed to a reviewer together with its review link."""
    application: Application
    reviewer: Reviewer
    token: ReviewToken
    review_url: str


def build_review_url(token: str, base_url: str | None = None) -> str:
    base = (base_url or get_settings().public_base_url).rstrip("/")
    return f"{base}/review/{token}"


class ReviewDispatcher:
    """
    Runs the staff actions around a review in the required order:
    pick reviewer -> transition to in_review -> mint token -> commit -> notify.

    The first three steps share the caller's transaction; if any of them
    fails the pointer advance is rolled back with it. Notifications go out
    only after the commit, so a mailed link always refers to a stored token.
    """

    def __init__(
        self,
        store: RecordStore,
        notifier: Notifier,
        clock: Clock = utc_now,
        base_url: str | None = None,
    ):
        self._store = store
        self._notifier = notifier
        self._base_url = base_url
        self._workflow = WorkflowEngine(store, clock=clock)
        self._scheduler = AssignmentScheduler(store, clock=clock)
        self._tokens = TokenService(store, clock=clock)
        self._followups = FollowUpService(store, clock=clock)

    async def send_to_review(
        self,
        application_id: UUID,
        actor: str,
        reviewer_id: UUID | None = None,
    ) -> Dispatch:
        """
        Assign a pending application and issue its review token.

        ``reviewer_id`` overrides round-robin selection.

        Raises:
            ApplicationNotFoundError
            ApplicationNotReviewableError: application is not pending
            NoEligibleReviewerError / ReviewerNotFoundError
            AssignmentConflictError / StaleStateError / ActiveTokenExistsError
        """
        application = await self._workflow.get_application(application_id)
        if application.status != ApplicationStatus.PENDING:
            raise ApplicationNotReviewableError(
                f"Application {application_id} is already "
                f"{ApplicationStatus(application.status).value}"
            )

        if reviewer_id is not None:
            reviewer = await self._scheduler.assign_specific(reviewer_id, actor)
        else:
            reviewer = await self._scheduler.assign(actor)

        application = await self._workflow.transition(
            application_id,
            ApplicationStatus.PENDING,
            ApplicationStatus.IN_REVIEW,
            actor,
            changes={"assigned_reviewer_id": reviewer.id},
        )
        token = await self._tokens.issue(application_id, reviewer.id, actor=actor)
        await self._store.commit()

        dispatch = Dispatch(
            application=application,
            reviewer=reviewer,
            token=token,
            review_url=build_review_url(token.token, self._base_url),
        )
        await self._notify_reviewer(dispatch)
        return dispatch

    async def resend(self, application_id: UUID, actor: str) -> Dispatch:
        """Expire the current link and send a fresh one to the assigned reviewer."""
        application = await self._workflow.get_application(application_id)
        if application.status != ApplicationStatus.IN_REVIEW:
            raise ApplicationNotReviewableError(
                f"Application {application_id} is "
                f"{ApplicationStatus(application.status).value}, not in review"
            )

        reviewer = await self._store.get(Reviewer, application.assigned_reviewer_id)
        if reviewer is None:
            raise ReviewerNotFoundError(
                f"Assigned reviewer {application.assigned_reviewer_id} not found"
            )

        token = await self._tokens.issue(application_id, reviewer.id, resend=True, actor=actor)
        await self._store.commit()
        dispatch = Dispatch(
            application=application,
            reviewer=reviewer,
            token=token,
            review_url=build_review_url(token.token, self._base_url),
        )
        await self._notify_reviewer(dispatch)
        return dispatch

    async def reject(self, application_id: UUID, actor: str, reason: str | None = None) -> Application:
        """
        Administrative override from pending or in_review to rejected.

        Any open review link is expired with it, so the reviewer sees
        "no longer available" instead of the rejected application.
        """
        application = await self._workflow.get_application(application_id)
        application = await self._workflow.transition(
            application_id,
            ApplicationStatus(application.status),
            ApplicationStatus.REJECTED,
            actor,
        )
        await self._tokens.expire_for_application(application_id, actor=actor)
        if reason and reason.strip():
            application = await self._workflow.append_note(application_id, "processing", reason, actor)
        await self._store.commit()

        payload = {
            "application_id": str(application_id),
            "status": ApplicationStatus.REJECTED.value,
            "reason": reason,
        }
        await self._notify(application, application.requester_id, "application.rejected", payload)
        return application

    async def _notify_reviewer(self, dispatch: Dispatch) -> None:
        payload = {
            "application_id": str(dispatch.application.id),
            "review_url": dispatch.review_url,
            "expires_at": dispatch.token.expires_at.isoformat(),
        }
        logger.info(
            f"Review link {mask_token(dispatch.token.token)} sent to reviewer {dispatch.reviewer.id}"
        )
        await self._notify(dispatch.application, dispatch.reviewer.id, "review.requested", payload)

    async def _notify(self, application: Application, target_id, event_type: str, payload: dict) -> None:
        try:
            await self._notifier.notify(target_id, event_type, payload)
        except Exception as e:
            await self._followups.record_failure(
                application.id,
                EffectKind.NOTIFICATION,
                e,
                payload={"target_id": str(target_id), "event_type": event_type, "payload": payload},
            )
