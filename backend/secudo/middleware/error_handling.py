"""
API Error Handling Middleware for Secudo
Provides standardized error responses and logging, and maps interchange
exceptions onto HTTP statuses.
"""

import logging
import traceback
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Type

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.middleware.base import BaseHTTPMiddleware

from ..services.interchange.exceptions import (
    HierarchyViolationError,
    InterchangeError,
    InvalidBundleError,
    InvalidSnapshotRequestError,
    NodeNotFoundError,
    ProjectAccessError,
    ProjectNotFoundError,
    RestoreInProgressError,
    SnapshotCorruptedError,
    SnapshotNotFoundError,
    SnapshotTooLargeError,
)
from ..services.interchange.hierarchy import ParentRejection

logger = logging.getLogger(__name__)


class ErrorDetail(BaseModel):
    """Detailed error information"""

    field: Optional[str] = None
    message: str
    type: Optional[str] = None
    code: Optional[str] = None


class APIErrorResponse(BaseModel):
    """Standardized API error response"""

    success: bool = False
    error: str
    message: str
    details: List[ErrorDetail] = Field(default_factory=list)
    error_id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    path: Optional[str] = None
    method: Optional[str] = None


class ErrorType:
    """Standard error types for consistent handling"""

    VALIDATION_ERROR = "validation_error"
    AUTHENTICATION_ERROR = "authentication_error"
    AUTHORIZATION_ERROR = "authorization_error"
    NOT_FOUND_ERROR = "not_found_error"
    CONFLICT_ERROR = "conflict_error"
    PAYLOAD_TOO_LARGE_ERROR = "payload_too_large_error"
    DATABASE_ERROR = "database_error"
    INTERNAL_ERROR = "internal_error"


INTERCHANGE_STATUS: Dict[Type[InterchangeError], int] = {
    ProjectAccessError: status.HTTP_403_FORBIDDEN,
    ProjectNotFoundError: status.HTTP_404_NOT_FOUND,
    SnapshotNotFoundError: status.HTTP_404_NOT_FOUND,
    NodeNotFoundError: status.HTTP_404_NOT_FOUND,
    SnapshotCorruptedError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SnapshotTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    RestoreInProgressError: status.HTTP_409_CONFLICT,
    InvalidBundleError: status.HTTP_400_BAD_REQUEST,
    InvalidSnapshotRequestError: status.HTTP_400_BAD_REQUEST,
}


def status_for(exc: InterchangeError) -> int:
    """HTTP status of an interchange exception."""
    if isinstance(exc, HierarchyViolationError):
        if exc.reason == ParentRejection.CYCLE.value:
            return status.HTTP_409_CONFLICT
        return status.HTTP_400_BAD_REQUEST
    for exc_type, code in INTERCHANGE_STATUS.items():
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def http_exception_for(exc: InterchangeError) -> HTTPException:
    """Translate an interchange exception into the route's HTTPException."""
    detail: Any = exc.message
    if isinstance(exc, SnapshotCorruptedError) and exc.details:
        detail = {"message": exc.message, "details": exc.details}
    return HTTPException(status_code=status_for(exc), detail=detail)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Error handling middleware with standardized responses"""

    def __init__(self, app, include_debug_info: bool = False):
        super().__init__(app)
        self.include_debug_info = include_debug_info

        self.error_mappings = {
            400: ErrorType.VALIDATION_ERROR,
            401: ErrorType.AUTHENTICATION_ERROR,
            403: ErrorType.AUTHORIZATION_ERROR,
            404: ErrorType.NOT_FOUND_ERROR,
            409: ErrorType.CONFLICT_ERROR,
            413: ErrorType.PAYLOAD_TOO_LARGE_ERROR,
            422: ErrorType.VALIDATION_ERROR,
            500: ErrorType.INTERNAL_ERROR,
        }

        # User-friendly error messages
        self.user_messages = {
            ErrorType.VALIDATION_ERROR: "Invalid request data provided",
            ErrorType.AUTHENTICATION_ERROR: "Authentication required",
            ErrorType.AUTHORIZATION_ERROR: "Insufficient permissions",
            ErrorType.NOT_FOUND_ERROR: "Requested resource not found",
            ErrorType.CONFLICT_ERROR: "Request conflicts with current state",
            ErrorType.PAYLOAD_TOO_LARGE_ERROR: "Request payload is too large",
            ErrorType.DATABASE_ERROR: "Database operation failed",
            ErrorType.INTERNAL_ERROR: "Internal server error occurred",
        }

    async def dispatch(self, request: Request, call_next):
        """Handle errors and provide standardized responses"""
        try:
            return await call_next(request)

        except HTTPException as http_exc:
            return self._handle_http_exception(request, http_exc)

        except InterchangeError as exc:
            return self._handle_http_exception(request, http_exception_for(exc))

        except Exception as exc:
            return self._handle_unexpected_exception(request, exc)

    def _handle_http_exception(self, request: Request, exc: HTTPException) -> JSONResponse:
        """Handle HTTP exceptions raised outside the routing layer"""
        error_type = self.error_mappings.get(exc.status_code, ErrorType.INTERNAL_ERROR)

        details = []
        if isinstance(exc.detail, str):
            details.append(ErrorDetail(message=exc.detail))
        elif isinstance(exc.detail, dict):
            details.append(ErrorDetail(message=str(exc.detail.get("message", "Error occurred"))))

        error_response = APIErrorResponse(
            error=error_type,
            message=self.user_messages.get(error_type, str(exc.detail)),
            details=details,
            path=str(request.url.path),
            method=request.method,
        )

        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"HTTP {exc.status_code} error: {exc.detail}",
            extra={"error_id": error_response.error_id, "path": request.url.path, "method": request.method},
        )
        return JSONResponse(status_code=exc.status_code, content=error_response.model_dump(mode="json"))

    def _handle_unexpected_exception(self, request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions"""
        error_id = str(uuid.uuid4())[:8]
        error_type = self._classify_exception(exc)

        details = [ErrorDetail(message="An unexpected error occurred", type=type(exc).__name__)]
        if self.include_debug_info:
            details.append(ErrorDetail(message=str(exc), type="exception"))
            details.append(ErrorDetail(message=traceback.format_exc(), type="traceback"))

        error_response = APIErrorResponse(
            error=error_type,
            message=self.user_messages.get(error_type, "An unexpected error occurred"),
            details=details,
            error_id=error_id,
            path=str(request.url.path),
            method=request.method,
        )

        logger.error(
            f"Unexpected error ({error_id}): {str(exc)}",
            extra={
                "error_id": error_id,
                "error_type": error_type,
                "exception_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc(),
            },
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response.model_dump(mode="json"),
        )

    def _classify_exception(self, exc: Exception) -> str:
        """Classify exception type for appropriate error categorization"""
        exc_name = type(exc).__name__.lower()

        if any(db_type in exc_name for db_type in ["sql", "database", "integrity", "operational"]):
            return ErrorType.DATABASE_ERROR

        return ErrorType.INTERNAL_ERROR
