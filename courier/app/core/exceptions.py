"""
Custom exceptions and error handlers for consistent error responses.

Every failure of a core operation is an AppException subclass carrying a
stable error code, the HTTP status it maps to, and enough details (entity id,
current vs. requested state) to render a precise message.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("courier.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InputValidationError(AppException):
    """Raised when input is malformed or required fields are missing."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class InvalidTransitionError(AppException):
    """Raised when a (current, requested) status pair is not in the transition table."""

    def __init__(self, parcel_id: Any, current: str, requested: str):
        super().__init__(
            message=f"Parcel {parcel_id} cannot move from '{current}' to '{requested}'",
            error_code="ERR_TRANSITION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"parcel_id": parcel_id, "current_status": current, "requested_status": requested}
        )


class MissingAssignmentError(AppException):
    """Raised when moving a parcel on the way without an assignment."""

    def __init__(self, parcel_id: Any, assignment_id: Any = None):
        message = f"Parcel {parcel_id} can only go 'on_the_way' through an assignment"
        if assignment_id is not None:
            message = f"Assignment {assignment_id} does not belong to parcel {parcel_id}"
        super().__init__(
            message=message,
            error_code="ERR_TRANSITION_002",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"parcel_id": parcel_id, "assignment_id": assignment_id}
        )


class InvalidStateError(AppException):
    """Raised when an operation is not allowed in the parcel's current state."""

    def __init__(
        self,
        message: str,
        details: Dict[str, Any] = None,
        error_code: str = "ERR_STATE_001",
        status_code: int = status.HTTP_400_BAD_REQUEST
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details
        )


class ParcelNotReviewableError(InvalidStateError):
    """Raised when a review references a parcel that is missing or not delivered."""

    def __init__(self, parcel_id: Any, current: str = None):
        if current is None:
            message = f"Parcel {parcel_id} does not exist and cannot be reviewed"
        else:
            message = f"Parcel {parcel_id} is '{current}', only delivered parcels can be reviewed"
        super().__init__(
            message=message,
            details={"parcel_id": parcel_id, "current_status": current, "required_status": "delivered"},
            error_code="ERR_STATE_002",
            status_code=status.HTTP_404_NOT_FOUND
        )


class ConflictError(AppException):
    """Raised when a concurrent writer won the race. The whole operation may be retried."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class DuplicateReviewError(AppException):
    """Raised when a reviewer already reviewed a parcel."""

    def __init__(self, parcel_id: Any, reviewer_id: Any):
        super().__init__(
            message=f"Reviewer {reviewer_id} already submitted a review for parcel {parcel_id}",
            error_code="ERR_REVIEW_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"parcel_id": parcel_id, "reviewer_id": reviewer_id}
        )


class PartialFailureError(AppException):
    """Raised when a multi-step operation may have partially committed and needs reconciliation."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PARTIAL_001",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details
        )


class StoreUnavailableError(AppException):
    """Raised when the data store cannot be reached or timed out. Never retried by the core."""

    def __init__(self, message: str = "Data store unavailable", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_STORE_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if isinstance(exc, PartialFailureError):
        logger.critical("Partial failure requires reconciliation: %s %s", exc.message, exc.details)
    elif isinstance(exc, StoreUnavailableError):
        logger.error("Store unavailable: %s", exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Drop the non-serializable context pydantic attaches to some errors."""
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
