"""
ClimbApp Backend — Shared Pydantic Schemas
==========================================

What:  Error, health and image payload models used across all endpoints.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ImageData(BaseModel):
    """
    An image transported inline as base64.

    `base64` may be plain base64 or a data URL
    (`data:image/jpeg;base64,...`) as produced by mobile camera plugins.
    """
    base64: str = Field(min_length=1, description="Base64-encoded image bytes")


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Example:
        {
            "error": "not_found",
            "message": "climbing site with ID 'b1f0...' was not found",
            "details": {"resource": "climbing site", "resource_id": "b1f0..."},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and dependency status."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    image_recognition: str = Field(
        description="Vision API status: available, unavailable, circuit_open"
    )
    uptime_seconds: float = Field(description="Seconds since service started")
