"""Base schemas and common types for the Review Gateway API."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GatewayBaseModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,  # Enable ORM mode
        populate_by_name=True,
        use_enum_values=True,
    )


# =============================================================================
# PAGINATION
# =============================================================================


class PaginationParams(BaseModel):
    """Query parameters for pagination."""

    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    page_size: int = Field(
        default=20, ge=1, le=100, description="Items per page"
    )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PaginatedResponse(GatewayBaseModel):
    """Wrapper for paginated responses."""

    items: list[Any]
    page: int
    page_size: int


# =============================================================================
# ERROR RESPONSES
# =============================================================================


class ErrorDetail(GatewayBaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str


class ErrorResponse(GatewayBaseModel):
    """Standard error response format."""

    error: str
    message: str
    details: list[ErrorDetail] = []
    request_id: str | None = None
