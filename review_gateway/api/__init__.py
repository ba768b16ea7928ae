"""API routes for Review Gateway."""

from fastapi import APIRouter

from .applications import router as applications_router
from .review import router as review_router
from .reviewers import router as reviewers_router

# Main API router
api_router = APIRouter()

# Staff routes (JWT)
api_router.include_router(applications_router)
api_router.include_router(reviewers_router)

# Reviewer routes (the review token is the credential)
api_router.include_router(review_router)

__all__ = ["api_router"]
