"""
Tests for the Assignment Scheduler - Verifying Round-Robin Fairness.

These tests verify:
1. FAIRNESS: every active reviewer gets floor(M/N) or ceil(M/N) of M assignments
2. SKIP-INACTIVE: deactivated reviewers are never selected
3. POINTER: survives across scheduler instances and is re-read every time
4. CONFLICT: a pointer that keeps moving surfaces AssignmentConflictError,
   a pointer created concurrently is re-read instead
"""

from collections import Counter
from uuid import UUID, uuid4

import pytest
from sqlalchemy import insert

from review_gateway.core.errors import (
    AssignmentConflictError,
    NoEligibleReviewerError,
    ReviewerNotFoundError,
)
from review_gateway.models import AssignmentPointer, Reviewer
from review_gateway.services.assignment import (
    POINTER_ID,
    AssignmentScheduler,
    select_next_reviewer,
)


def ordered_ids(reviewers) -> list[UUID]:
    return sorted((r.id for r in reviewers), key=str)


# =============================================================================
# TEST: PURE SELECTION
# =============================================================================


class TestSelectNextReviewer:
    def test_first_assignment_picks_lowest_id(self):
        ids = [uuid4() for _ in range(3)]
        assert select_next_reviewer(ids, None) == sorted(ids, key=str)[0]

    def test_picks_cyclic_successor(self):
        ids = sorted((uuid4() for _ in range(3)), key=str)
        assert select_next_reviewer(ids, ids[0]) == ids[1]
        assert select_next_reviewer(ids, ids[1]) == ids[2]
        assert select_next_reviewer(ids, ids[2]) == ids[0]

    def test_input_order_does_not_matter(self):
        ids = sorted((uuid4() for _ in range(4)), key=str)
        shuffled = [ids[2], ids[0], ids[3], ids[1]]
        assert select_next_reviewer(shuffled, ids[1]) == ids[2]

    def test_missing_pointer_picks_next_greater_id(self):
        ids = [
            UUID("10000000-0000-0000-0000-000000000000"),
            UUID("30000000-0000-0000-0000-000000000000"),
            UUID("50000000-0000-0000-0000-000000000000"),
        ]
        deactivated = UUID("40000000-0000-0000-0000-000000000000")
        assert select_next_reviewer(ids, deactivated) == ids[2]

    def test_missing_pointer_wraps_around(self):
        ids = [
            UUID("10000000-0000-0000-0000-000000000000"),
            UUID("30000000-0000-0000-0000-000000000000"),
        ]
        deactivated = UUID("90000000-0000-0000-0000-000000000000")
        assert select_next_reviewer(ids, deactivated) == ids[0]

    def test_empty_pool_raises(self):
        with pytest.raises(NoEligibleReviewerError):
            select_next_reviewer([], None)


# =============================================================================
# TEST: SCHEDULER
# =============================================================================


class TestAssignmentScheduler:
    @pytest.mark.parametrize("reviewer_count,assignments", [(1, 3), (3, 3), (3, 10), (4, 9)])
    async def test_round_robin_fairness(self, store, make_reviewer, clock, reviewer_count, assignments):
        reviewers = [await make_reviewer(f"R{i}") for i in range(reviewer_count)]
        scheduler = AssignmentScheduler(store, clock=clock)

        picked = [(await scheduler.assign("staff:1")).id for _ in range(assignments)]

        counts = Counter(picked)
        low, high = assignments // reviewer_count, -(-assignments // reviewer_count)
        for reviewer in reviewers:
            assert low <= counts[reviewer.id] <= high

        # Nobody gets a second turn while someone still has none
        seen = set()
        for i, reviewer_id in enumerate(picked):
            if i < reviewer_count:
                assert reviewer_id not in seen
            seen.add(reviewer_id)

    async def test_assignments_follow_id_order(self, store, make_reviewer, clock):
        reviewers = [await make_reviewer(f"R{i}") for i in range(3)]
        scheduler = AssignmentScheduler(store, clock=clock)

        picked = [(await scheduler.assign("staff:1")).id for _ in range(4)]

        expected = ordered_ids(reviewers)
        assert picked == expected + expected[:1]

    async def test_inactive_reviewers_are_never_selected(self, store, make_reviewer, clock):
        active = [await make_reviewer("Active1"), await make_reviewer("Active2")]
        inactive = await make_reviewer("Inactive", is_active=False)
        scheduler = AssignmentScheduler(store, clock=clock)

        picked = {(await scheduler.assign("staff:1")).id for _ in range(6)}

        assert inactive.id not in picked
        assert picked == {r.id for r in active}

    async def test_deactivation_between_assignments(self, store, make_reviewer, clock):
        reviewers = [await make_reviewer(f"R{i}") for i in range(3)]
        ids = ordered_ids(reviewers)
        scheduler = AssignmentScheduler(store, clock=clock)

        first = await scheduler.assign("staff:1")
        assert first.id == ids[0]

        # The reviewer that would be next leaves the pool
        await store.compare_and_swap(Reviewer, ids[1], expected={}, updated={"is_active": False})

        picked = [(await scheduler.assign("staff:1")).id for _ in range(4)]

        assert ids[1] not in picked
        assert picked == [ids[2], ids[0], ids[2], ids[0]]

    async def test_pointer_on_deactivated_reviewer_moves_to_successor(self, store, make_reviewer, clock):
        reviewers = [await make_reviewer(f"R{i}") for i in range(3)]
        ids = ordered_ids(reviewers)
        scheduler = AssignmentScheduler(store, clock=clock)

        await scheduler.assign("staff:1")
        second = await scheduler.assign("staff:1")
        assert second.id == ids[1]

        await store.compare_and_swap(Reviewer, ids[1], expected={}, updated={"is_active": False})

        assert (await scheduler.assign("staff:1")).id == ids[2]

    async def test_empty_pool_raises(self, store, make_reviewer, clock):
        await make_reviewer("Gone", is_active=False)
        scheduler = AssignmentScheduler(store, clock=clock)

        with pytest.raises(NoEligibleReviewerError):
            await scheduler.assign("staff:1")

    async def test_pointer_is_durable_across_instances(self, store, make_reviewer, clock):
        reviewers = [await make_reviewer(f"R{i}") for i in range(3)]
        ids = ordered_ids(reviewers)

        await AssignmentScheduler(store, clock=clock).assign("staff:1")
        pointer = await store.get(AssignmentPointer, POINTER_ID)
        assert pointer.last_assigned_reviewer_id == ids[0]

        # A fresh scheduler (e.g. after a restart) continues the rotation
        assert (await AssignmentScheduler(store, clock=clock).assign("staff:1")).id == ids[1]

    async def test_pointer_is_reread_on_every_assignment(self, store, make_reviewer, clock):
        reviewers = [await make_reviewer(f"R{i}") for i in range(3)]
        ids = ordered_ids(reviewers)
        scheduler = AssignmentScheduler(store, clock=clock)

        await scheduler.assign("staff:1")
        # Another process advanced the pointer in the meantime
        await store.compare_and_swap(
            AssignmentPointer,
            POINTER_ID,
            expected={"last_assigned_reviewer_id": ids[0]},
            updated={"last_assigned_reviewer_id": ids[1]},
        )

        assert (await scheduler.assign("staff:1")).id == ids[2]

    async def test_assignment_stamps_last_assigned_at(self, store, make_reviewer, clock):
        reviewer = await make_reviewer()
        scheduler = AssignmentScheduler(store, clock=clock)

        selected = await scheduler.assign("staff:1")

        assert selected.id == reviewer.id
        assert selected.last_assigned_at is not None

    async def test_pointer_that_keeps_moving_raises_conflict(self, store, make_reviewer, clock):
        await make_reviewer("R1")
        await make_reviewer("R2")
        scheduler = AssignmentScheduler(store, clock=clock, max_attempts=3)
        await scheduler.assign("staff:1")

        original = store.compare_and_swap
        attempts = []

        async def always_lose(model, record_id, expected, updated):
            if model is AssignmentPointer:
                attempts.append(record_id)
                return False
            return await original(model, record_id, expected, updated)

        store.compare_and_swap = always_lose

        with pytest.raises(AssignmentConflictError):
            await scheduler.assign("staff:1")
        assert len(attempts) == 3

    async def test_pointer_created_concurrently_is_reread(self, store, make_reviewer, clock):
        """Another process inserts the first pointer between our read and our insert."""
        reviewers = [await make_reviewer(f"R{i}") for i in range(3)]
        ids = ordered_ids(reviewers)
        scheduler = AssignmentScheduler(store, clock=clock)

        original = store.get
        missed = []

        async def pointer_appears_after_read(model, record_id):
            if model is AssignmentPointer and not missed:
                missed.append(record_id)
                await store.session.execute(
                    insert(AssignmentPointer).values(
                        id=POINTER_ID, last_assigned_reviewer_id=ids[0]
                    )
                )
                return None
            return await original(model, record_id)

        store.get = pointer_appears_after_read

        selected = await scheduler.assign("staff:1")

        assert missed == [POINTER_ID]
        assert selected.id == ids[1]
        pointer = await original(AssignmentPointer, POINTER_ID)
        assert pointer.last_assigned_reviewer_id == ids[1]


class TestAssignSpecific:
    async def test_explicit_reviewer_does_not_move_pointer(self, store, make_reviewer, clock):
        reviewers = [await make_reviewer(f"R{i}") for i in range(3)]
        ids = ordered_ids(reviewers)
        scheduler = AssignmentScheduler(store, clock=clock)

        await scheduler.assign("staff:1")
        chosen = await scheduler.assign_specific(ids[2], "staff:1")

        assert chosen.id == ids[2]
        assert (await scheduler.assign("staff:1")).id == ids[1]

    async def test_unknown_reviewer_raises(self, store, clock):
        scheduler = AssignmentScheduler(store, clock=clock)

        with pytest.raises(ReviewerNotFoundError):
            await scheduler.assign_specific(uuid4(), "staff:1")

    async def test_inactive_reviewer_raises(self, store, make_reviewer, clock):
        reviewer = await make_reviewer(is_active=False)
        scheduler = AssignmentScheduler(store, clock=clock)

        with pytest.raises(NoEligibleReviewerError):
            await scheduler.assign_specific(reviewer.id, "staff:1")
