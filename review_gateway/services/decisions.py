"""
Decision Processor: turns a reviewer's token + decision into workflow state.

Flow for ``submit_decision``:
1. Validate the token (capability errors propagate unchanged)
2. Check the application is still in review
3. Consume the token (conditional write; at most one winner per token)
4. Transition in_review -> approved | denied and commit
5. On approval, generate the document and complete the application
6. Notify the requester

Everything after step 4 runs against an already committed decision. A
failure there is recorded as an EffectFailure for follow-up and never
undoes the decision.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from ..core.clock import Clock, as_utc, utc_now
from ..core.errors import (
    ApplicationNotReviewableError,
    InvalidOperationError,
    StaleStateError,
)
from ..core.store import RecordStore
from ..models import Application, ApplicationStatus, EffectKind, ReviewDecision
from .effects import DocumentGenerator, Notifier
from .followups import FollowUpService
from .tokens import TokenService
from .workflow import SYSTEM_ACTOR, WorkflowEngine

logger = logging.getLogger(__name__)

DECISION_STATUS = {
    ReviewDecision.APPROVED: ApplicationStatus.APPROVED,
    ReviewDecision.DENIED: ApplicationStatus.DENIED,
}


@dataclass
class ApplicationOutcome:
    """Result of a decision as reported back to the caller."""
    application_id: UUID
    decision: ReviewDecision
    status: ApplicationStatus
    decided_at: datetime
    completed_at: datetime | None = None
    document_id: str | None = None

    @classmethod
    def from_application(cls, application: Application) -> "ApplicationOutcome":
        status = ApplicationStatus(application.status)
        decision = (
            ReviewDecision.DENIED if status == ApplicationStatus.DENIED
            else ReviewDecision.APPROVED
        )
        return cls(
            application_id=application.id,
            decision=decision,
            status=status,
            decided_at=as_utc(application.decided_at),
            completed_at=as_utc(application.completed_at),
            document_id=application.document_id,
        )


class DecisionProcessor:
    """Applies reviewer decisions and runs their follow-up effects."""

    def __init__(
        self,
        store: RecordStore,
        documents: DocumentGenerator,
        notifier: Notifier,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._documents = documents
        self._notifier = notifier
        self._clock = clock
        self._tokens = TokenService(store, clock=clock)
        self._workflow = WorkflowEngine(store, clock=clock)
        self._followups = FollowUpService(store, clock=clock)

    async def submit_decision(
        self,
        token_value: str,
        decision: ReviewDecision,
        notes: str | None = None,
    ) -> ApplicationOutcome:
        """
        Record a reviewer's decision.

        Raises:
            TokenNotFoundError / TokenExpiredError / TokenConsumedError
            ApplicationNotReviewableError: application left in_review
                (e.g. staff rejected it while the review page was open)
        """
        decision = ReviewDecision(decision)

        token = await self._tokens.validate(token_value)
        application = await self._workflow.get_application(token.application_id)
        if application.status != ApplicationStatus.IN_REVIEW:
            raise ApplicationNotReviewableError(
                f"Application {application.id} is {ApplicationStatus(application.status).value}"
            )

        await self._tokens.consume(token_value)

        decided_at = self._clock()
        actor = f"reviewer:{token.reviewer_id}"
        try:
            application = await self._workflow.transition(
                application.id,
                ApplicationStatus.IN_REVIEW,
                DECISION_STATUS[decision],
                actor,
                changes={"decided_at": decided_at},
                note=notes,
            )
        except StaleStateError as e:
            # Raising here rolls back the consume together with the request
            raise ApplicationNotReviewableError(str(e)) from e

        # The decision is the authoritative fact from here on
        await self._store.commit()
        logger.info(f"Decision {decision.value} recorded for application {application.id}")

        if decision == ReviewDecision.APPROVED:
            application, error = await self._complete(application)
            if error is not None:
                await self._followups.record_failure(
                    application.id, EffectKind.DOCUMENT_GENERATION, error
                )

        await self._notify_requester(application)
        await self._store.commit()

        return ApplicationOutcome.from_application(application)

    async def retry_documents(self, application_id: UUID, actor: str = SYSTEM_ACTOR) -> ApplicationOutcome:
        """
        Re-run document generation for an approved application.

        A completed application is left alone (open failures are closed).
        When the retry completes the application, the requester is notified.
        Any status other than approved or completed raises
        InvalidOperationError.
        """
        application = await self._workflow.get_application(application_id)
        status = ApplicationStatus(application.status)
        error: Exception | None = None

        if status == ApplicationStatus.APPROVED:
            application, error = await self._complete(application)
            if ApplicationStatus(application.status) == ApplicationStatus.COMPLETED:
                # The requester so far only heard about the approval
                await self._notify_requester(application)
        elif status != ApplicationStatus.COMPLETED:
            raise InvalidOperationError(
                f"Application {application_id} is {status.value}; nothing to generate"
            )

        for failure in await self._followups.open_failures(
            EffectKind.DOCUMENT_GENERATION, application_id=application_id
        ):
            if error is None:
                await self._followups.resolve(failure, actor=actor)
            else:
                await self._followups.record_retry_failure(failure, error)

        return ApplicationOutcome.from_application(application)

    async def _complete(self, application: Application) -> tuple[Application, Exception | None]:
        """Generate the document and move approved -> completed."""
        try:
            document_id = await self._documents.generate(application.id)
        except Exception as e:
            logger.warning(f"Document generation failed for {application.id}: {e}")
            return application, e

        try:
            application = await self._workflow.transition(
                application.id,
                ApplicationStatus.APPROVED,
                ApplicationStatus.COMPLETED,
                SYSTEM_ACTOR,
                changes={"document_id": document_id, "completed_at": self._clock()},
            )
        except StaleStateError as e:
            # Someone else completed it; the original intent is already satisfied
            logger.info(f"Completion skipped: {e}")
            application = await self._workflow.get_application(application.id)
        return application, None

    async def _notify_requester(self, application: Application) -> None:
        status = ApplicationStatus(application.status)
        event_type = f"application.{status.value}"
        payload = {
            "application_id": str(application.id),
            "status": status.value,
            "decided_at": as_utc(application.decided_at).isoformat() if application.decided_at else None,
            "document_id": application.document_id,
        }
        try:
            await self._notifier.notify(application.requester_id, event_type, payload)
        except Exception as e:
            await self._followups.record_failure(
                application.id,
                EffectKind.NOTIFICATION,
                e,
                payload={
                    "target_id": str(application.requester_id),
                    "event_type": event_type,
                    "payload": payload,
                },
            )
