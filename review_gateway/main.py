"""Review Gateway: Main FastAPI Application.

Moves customer applications through staff triage, reviewer assignment and
a single-use, time-limited review link to an approved or denied outcome.
"""

from contextlib import asynccontextmanager
import logging
import os
import traceback

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router
from .core import close_db, get_settings, init_db
from .schemas import ErrorResponse

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info(f"Starting {settings.app_name} ({settings.environment})")

    # Startup - skip init_db in production (tables already exist)
    if os.getenv("ENVIRONMENT") != "production":
        try:
            await init_db()
        except Exception as e:
            logger.warning(f"Could not initialize database: {e}")
    yield
    # Shutdown
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Review Gateway API

    Application review workflow with secure, single-use reviewer links.

    ### Key Features

    - **Explicit State Machine**: pending, in_review, approved/denied, completed, rejected.
    - **Fair Assignment**: Round-robin over active reviewers with a durable pointer.
    - **Review Links**: Single-use bearer tokens that expire after seven days.
    - **Durable Decisions**: Document generation and notifications never undo a decision.

    ### Authentication

    Staff endpoints require a JWT in the `Authorization: Bearer <token>` header.
    Reviewer endpoints under `/review/{token}` are authorized by the token alone.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

# CORS middleware with explicit origins (credentials require explicit origins, not "*")
cors_origins = list(settings.allowed_origins)
if settings.public_base_url not in cors_origins:
    cors_origins.append(settings.public_base_url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS", "HEAD"],
    allow_headers=["*"],
    max_age=86400,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc!r}")
    if settings.debug or settings.environment != "production":
        logger.error(traceback.format_exc())

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message="An unexpected error occurred",
            details=[],
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "review_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
