"""
Pydantic schemas shared by the API.

These schemas define the API contract for health and error bodies.
No business logic belongs here.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint.

    Attributes:
        status: ``ok`` when every dependency answers, else ``degraded``.
        version: Running API version.
        database: Whether the database answered the health query.
    """

    status: Literal["ok", "degraded"]
    version: str
    database: bool


class ErrorResponse(BaseModel):
    """Body of every error response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str
    timestamp: str = Field(..., description="ISO-8601 UTC timestamp")
    errorId: str = Field(..., description="Correlation id of the log entry")
    context: Optional[str] = None
    details: Optional[dict[str, Any]] = Field(
        default=None, description="Development mode only"
    )
