"""
Workflow Engine: the application state machine.

    pending ──> in_review ──> approved ──> completed
       │            │    └──> denied
       └────────────┴──> rejected   (administrative override)

Guarantees:
1. ``transition`` is the only code path that writes ``Application.status``
2. A transition is one conditional write: it applies only if the stored
   status still equals the expected ``from`` state
3. A lost race raises StaleStateError and leaves storage untouched
4. Side effects never run inside a transition; callers sequence them
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func

from ..core.clock import Clock, utc_now
from ..core.errors import (
    ApplicationNotFoundError,
    IllegalTransitionError,
    RecordNotFoundError,
    StaleStateError,
)
from ..core.store import RecordStore
from ..models import Application, ApplicationStatus, AuditAction, Package, Requester
from .audit import AuditService

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

ALLOWED_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.PENDING: frozenset({
        ApplicationStatus.IN_REVIEW,
        ApplicationStatus.REJECTED,
    }),
    ApplicationStatus.IN_REVIEW: frozenset({
        ApplicationStatus.APPROVED,
        ApplicationStatus.DENIED,
        ApplicationStatus.REJECTED,
    }),
    ApplicationStatus.APPROVED: frozenset({
        ApplicationStatus.COMPLETED,
    }),
}

TERMINAL_STATES = frozenset({
    ApplicationStatus.COMPLETED,
    ApplicationStatus.DENIED,
    ApplicationStatus.REJECTED,
})

NOTE_FIELDS = {
    "review": "review_notes",
    "processing": "processing_notes",
}


def can_transition(from_status: ApplicationStatus, to_status: ApplicationStatus) -> bool:
    """True if the adjacency table lists ``from_status -> to_status``."""
    return to_status in ALLOWED_TRANSITIONS.get(ApplicationStatus(from_status), frozenset())


def is_terminal(status: ApplicationStatus) -> bool:
    return ApplicationStatus(status) in TERMINAL_STATES


def format_note(text: str, actor: str, at: datetime) -> str:
    return f"[{at.strftime('%Y-%m-%d %H:%M UTC')}] {actor}: {text.strip()}\n"


class WorkflowEngine:
    """Owns every status change of an Application."""

    def __init__(self, store: RecordStore, clock: Clock = utc_now):
        self._store = store
        self._clock = clock
        self._audit = AuditService(store)

    can_transition = staticmethod(can_transition)

    async def get_application(self, application_id: UUID) -> Application:
        application = await self._store.get(Application, application_id)
        if application is None:
            raise ApplicationNotFoundError(f"Application {application_id} not found")
        return application

    async def create_application(
        self,
        requester_id: UUID,
        package_id: UUID,
        form_data: dict[str, Any] | None = None,
    ) -> Application:
        """Store a new pending application.

        Raises:
            RecordNotFoundError: requester or package does not exist
        """
        if await self._store.get(Requester, requester_id) is None:
            raise RecordNotFoundError(f"Requester {requester_id} not found")
        if await self._store.get(Package, package_id) is None:
            raise RecordNotFoundError(f"Package {package_id} not found")

        application = Application(
            requester_id=requester_id,
            package_id=package_id,
            status=ApplicationStatus.PENDING,
            form_data=form_data or {},
        )
        return await self._store.put(application)

    async def transition(
        self,
        application_id: UUID,
        from_status: ApplicationStatus,
        to_status: ApplicationStatus,
        actor: str,
        *,
        changes: dict[str, Any] | None = None,
        note: str | None = None,
    ) -> Application:
        """
        Move an application from ``from_status`` to ``to_status``.

        ``changes`` are extra columns written in the same conditional write
        (e.g. ``assigned_reviewer_id`` when entering review). ``note`` is
        appended to ``review_notes``.

        Raises:
            IllegalTransitionError: pair not in the adjacency table
            ApplicationNotFoundError: unknown application
            StaleStateError: stored status is not ``from_status``; callers must
                re-read and re-decide rather than retry
        """
        from_status = ApplicationStatus(from_status)
        to_status = ApplicationStatus(to_status)

        if not can_transition(from_status, to_status):
            raise IllegalTransitionError(from_status, to_status)

        now = self._clock()
        values: dict[str, Any] = dict(changes or {})
        values["status"] = to_status
        values["updated_at"] = now
        if note and note.strip():
            values["review_notes"] = _appended(Application.review_notes, format_note(note, actor, now))

        written = await self._store.compare_and_swap(
            Application,
            application_id,
            expected={"status": from_status},
            updated=values,
        )

        if not written:
            current = await self._store.get(Application, application_id)
            if current is None:
                raise ApplicationNotFoundError(f"Application {application_id} not found")
            logger.info(
                f"Stale transition on {application_id}: wanted {from_status.value} -> "
                f"{to_status.value}, found {ApplicationStatus(current.status).value}"
            )
            raise StaleStateError(application_id, from_status, current.status)

        await self._audit.log_event(
            action=AuditAction.TRANSITION,
            resource_type="application",
            resource_id=application_id,
            actor=actor,
            details={
                "from": from_status.value,
                "to": to_status.value,
                "changes": {k: _jsonable(v) for k, v in (changes or {}).items()},
            },
        )

        logger.info(
            f"Application {application_id}: {from_status.value} -> {to_status.value} by {actor}"
        )
        return await self.get_application(application_id)

    async def append_note(
        self,
        application_id: UUID,
        kind: str,
        text: str,
        actor: str,
    ) -> Application:
        """Append a stamped line to review or processing notes. Status is untouched."""
        field = NOTE_FIELDS.get(kind)
        if field is None:
            raise ValueError(f"Unknown note kind: {kind}")

        now = self._clock()
        written = await self._store.compare_and_swap(
            Application,
            application_id,
            expected={},
            updated={
                field: _appended(getattr(Application, field), format_note(text, actor, now)),
                "updated_at": now,
            },
        )
        if not written:
            raise ApplicationNotFoundError(f"Application {application_id} not found")

        await self._audit.log_event(
            action=AuditAction.NOTE,
            resource_type="application",
            resource_id=application_id,
            actor=actor,
            details={"kind": kind},
        )
        return await self.get_application(application_id)


def _appended(column, text: str):
    """SQL expression appending ``text`` to a nullable text column in place."""
    return func.coalesce(column, "") + text


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, datetime)):
        return str(value)
    return getattr(value, "value", value)
