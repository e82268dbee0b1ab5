"""
ClimbApp Backend — Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for the different error scenarios.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with the right status code.
Who:   Raised by services; caught by global handlers.

Exception Hierarchy:
    ClimbingAppError (base)
    ├── ValidationError          → 400 Bad Request
    ├── NotFoundError            → 404 Not Found
    ├── ImageRecognitionError    → 503 Service Unavailable
    ├── CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
    ├── AnnotateImageError       → handled inside the query flow
    └── DatabaseError            → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class ClimbingAppError(Exception):
    """
    Base exception for all ClimbApp application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ClimbingAppError):
    """
    Raised when client input fails validation.

    When:    Undecodable base64, unsupported image format, image too large,
             request body rejected by the schema.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(ClimbingAppError):
    """
    Raised when a requested resource does not exist.

    When:    Unknown site or route id, unknown product in the vision catalog.
    HTTP:    404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class ImageRecognitionError(ClimbingAppError):
    """
    Raised when Google Cloud Vision or Storage fails after all retries.

    HTTP:    503 Service Unavailable
    """

    def __init__(
        self,
        message: str = "The image recognition service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(ClimbingAppError):
    """
    Raised when the circuit breaker guarding Google Cloud is OPEN.

    CLOSED (normal) → failures increment counter
    → After N failures → OPEN (reject all calls for the recovery timeout)
    → After the timeout → HALF-OPEN (allow one test call)
    → Test succeeds → CLOSED; test fails → OPEN again

    HTTP:    503 Service Unavailable
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Image recognition is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class AnnotateImageError(ClimbingAppError):
    """
    The vision service answered, but reported an error for the image itself.

    Raised from the product search call; the query flow logs it and answers
    with an empty result set instead of failing the request.
    """

    def __init__(
        self,
        message: str = "The image could not be annotated",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(ClimbingAppError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; details are
    logged server-side only.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
