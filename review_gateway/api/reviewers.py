"""Reviewer pool and context record management (admin only)."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from ..core import AdminDep, StoreDep
from ..core.errors import RecordConflictError
from ..models import Package, Requester, Reviewer
from ..schemas import (
    PackageCreate,
    PackageResponse,
    RequesterCreate,
    RequesterResponse,
    ReviewerCreate,
    ReviewerResponse,
    ReviewerUpdate,
)
from .errors import http_error

router = APIRouter(tags=["reviewers"])


# =============================================================================
# REVIEWERS
# =============================================================================


@router.get("/reviewers", response_model=list[ReviewerResponse])
async def list_reviewers(
    current_staff: AdminDep,
    store: StoreDep,
    active: bool | None = Query(default=None, description="Filter by active flag"),
):
    criteria = []
    if active is not None:
        criteria.append(Reviewer.is_active == active)
    reviewers = await store.query(Reviewer, *criteria, order_by=Reviewer.created_at)
    return [ReviewerResponse.model_validate(r) for r in reviewers]


@router.post("/reviewers", response_model=ReviewerResponse, status_code=status.HTTP_201_CREATED)
async def create_reviewer(
    request: ReviewerCreate,
    current_staff: AdminDep,
    store: StoreDep,
):
    """Add a reviewer. Active reviewers join the rotation immediately."""
    reviewer = Reviewer(**request.model_dump())
    try:
        await store.put(reviewer)
    except RecordConflictError:
        raise http_error(
            status.HTTP_409_CONFLICT,
            "reviewer_exists",
            f"A reviewer with email {request.email} already exists",
        )
    return ReviewerResponse.model_validate(reviewer)


@router.patch("/reviewers/{reviewer_id}", response_model=ReviewerResponse)
async def update_reviewer(
    reviewer_id: UUID,
    request: ReviewerUpdate,
    current_staff: AdminDep,
    store: StoreDep,
):
    """Activate/deactivate a reviewer or change their specialty."""
    reviewer = await store.get(Reviewer, reviewer_id)
    if reviewer is None:
        raise http_error(status.HTTP_404_NOT_FOUND, "reviewer_not_found", "Reviewer not found")

    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(reviewer, field, value)
    await store.put(reviewer)
    return ReviewerResponse.model_validate(reviewer)


# =============================================================================
# CONTEXT RECORDS
# =============================================================================


@router.post("/requesters", response_model=RequesterResponse, status_code=status.HTTP_201_CREATED)
async def create_requester(
    request: RequesterCreate,
    current_staff: AdminDep,
    store: StoreDep,
):
    requester = Requester(**request.model_dump())
    await store.put(requester)
    return RequesterResponse.model_validate(requester)


@router.post("/packages", response_model=PackageResponse, status_code=status.HTTP_201_CREATED)
async def create_package(
    request: PackageCreate,
    current_staff: AdminDep,
    store: StoreDep,
):
    package = Package(**request.model_dump())
    await store.put(package)
    return PackageResponse.model_validate(package)
