"""
Assignment Scheduler: fair round-robin over active reviewers.

The only state is a durable pointer holding the last assigned reviewer id.
Each assignment re-reads the pointer, picks the cyclic successor among the
active reviewers (ordered by id), and advances the pointer with a
conditional write. Concurrent assignments therefore serialize on the pointer
row and each reviewer is handed work in turn.
"""

import logging
from typing import Sequence
from uuid import UUID

from ..core.clock import Clock, utc_now
from ..core.config import get_settings
from ..core.errors import (
    AssignmentConflictError,
    NoEligibleReviewerError,
    ReviewerNotFoundError,
)
from ..core.store import RecordStore
from ..models import AssignmentPointer, AuditAction, Reviewer
from .audit import AuditService

logger = logging.getLogger(__name__)

POINTER_ID = "global"


def select_next_reviewer(
    reviewer_ids: Sequence[UUID],
    last_assigned_id: UUID | None,
) -> UUID:
    """
    Pick the reviewer after ``last_assigned_id`` in cyclic id order.

    If the last assigned reviewer is no longer in the list, the first id
    sorting after it is chosen (wrapping to the start), so deactivating a
    reviewer does not reset or skip anyone else's turn.
    """
    if not reviewer_ids:
        raise NoEligibleReviewerError("No active reviewers available")

    ordered = sorted(reviewer_ids, key=str)
    if last_assigned_id is None:
        return ordered[0]

    last_key = str(last_assigned_id)
    keys = [str(r) for r in ordered]
    if last_key in keys:
        return ordered[(keys.index(last_key) + 1) % len(ordered)]

    for reviewer_id, key in zip(ordered, keys):
        if key > last_key:
            return reviewer_id
    return ordered[0]


class AssignmentScheduler:
    """Selects the next reviewer and records the assignment."""

    def __init__(
        self,
        store: RecordStore,
        clock: Clock = utc_now,
        max_attempts: int | None = None,
    ):
        self._store = store
        self._clock = clock
        self._max_attempts = max_attempts or get_settings().assignment_max_attempts
        self._audit = AuditService(store)

    async def active_reviewers(self) -> Sequence[Reviewer]:
        reviewers = await self._store.query(Reviewer, Reviewer.is_active.is_(True))
        return sorted(reviewers, key=lambda r: str(r.id))

    async def assign(self, actor: str) -> Reviewer:
        """
        Advance the round-robin pointer and return the selected reviewer.

        Raises:
            NoEligibleReviewerError: no active reviewers
            AssignmentConflictError: pointer changed on every attempt
        """
        for attempt in range(1, self._max_attempts + 1):
            reviewers = await self.active_reviewers()
            if not reviewers:
                raise NoEligibleReviewerError("No active reviewers available")

            last_assigned_id = await self._read_pointer()
            selected_id = select_next_reviewer([r.id for r in reviewers], last_assigned_id)

            advanced = await self._store.compare_and_swap(
                AssignmentPointer,
                POINTER_ID,
                expected={"last_assigned_reviewer_id": last_assigned_id},
                updated={
                    "last_assigned_reviewer_id": selected_id,
                    "updated_at": self._clock(),
                },
            )
            if advanced:
                reviewer = next(r for r in reviewers if r.id == selected_id)
                return await self._record_assignment(reviewer, actor, round_robin=True)

            logger.info(f"Assignment pointer moved concurrently (attempt {attempt}/{self._max_attempts})")

        raise AssignmentConflictError(
            f"Could not advance assignment pointer after {self._max_attempts} attempts"
        )

    async def assign_specific(self, reviewer_id: UUID, actor: str) -> Reviewer:
        """Hand work to a chosen reviewer without moving the round-robin pointer."""
        reviewer = await self._store.get(Reviewer, reviewer_id)
        if reviewer is None:
            raise ReviewerNotFoundError(f"Reviewer {reviewer_id} not found")
        if not reviewer.is_active:
            raise NoEligibleReviewerError(f"Reviewer {reviewer_id} is not active")
        return await self._record_assignment(reviewer, actor, round_robin=False)

    async def _read_pointer(self) -> UUID | None:
        pointer = await self._store.get(AssignmentPointer, POINTER_ID)
        if pointer is not None:
            return pointer.last_assigned_reviewer_id

        created = await self._store.put_if_absent(
            AssignmentPointer(id=POINTER_ID, last_assigned_reviewer_id=None)
        )
        if created:
            return None

        # Another process created it first; continue from its value
        logger.info("Assignment pointer created concurrently, re-reading")
        pointer = await self._store.get(AssignmentPointer, POINTER_ID)
        return pointer.last_assigned_reviewer_id

    async def _record_assignment(self, reviewer: Reviewer, actor: str, round_robin: bool) -> Reviewer:
        now = self._clock()
        await self._store.compare_and_swap(
            Reviewer,
            reviewer.id,
            expected={},
            updated={"last_assigned_at": now},
        )
        await self._audit.log_event(
            action=AuditAction.ASSIGN,
            resource_type="reviewer",
            resource_id=reviewer.id,
            actor=actor,
            details={"round_robin": round_robin},
        )
        logger.info(f"Selected reviewer {reviewer.id} ({'round robin' if round_robin else 'explicit'})")
        return await self._store.get(Reviewer, reviewer.id)
