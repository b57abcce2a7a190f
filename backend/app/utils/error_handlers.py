"""
Centralized error handling and user-friendly error messages.
"""
import logging

from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error."""
    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or out-of-range input."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=400, details=details)


class NotFoundError(AppError):
    """Resource not found error."""
    def __init__(self, message: str = "Resource not found", details: dict | None = None):
        super().__init__(message, status_code=404, details=details)


class UnauthorizedError(AppError):
    """Unauthorized access error."""
    def __init__(self, message: str = "Unauthorized access", details: dict | None = None, status_code: int = 401):
        super().__init__(message, status_code=status_code, details=details)


class ForbiddenError(UnauthorizedError):
    """Caller is identified but holds the wrong role or does not own the resource."""
    def __init__(self, message: str = "Access forbidden", details: dict | None = None):
        super().__init__(message, details=details, status_code=403)


class ConflictError(AppError):
    """Duplicate join, busy room, or a transition whose precondition no longer holds."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=409, details=details)


class RateLimitedError(AppError):
    """Admission denied by the rate limiter."""
    def __init__(self, message: str | None = None, retry_after: int = 1, details: dict | None = None):
        self.retry_after = max(1, int(retry_after))
        merged = {"retry_after": self.retry_after, **(details or {})}
        super().__init__(message or get_error_message("rate_limited"), status_code=429, details=merged)


class DatabaseError(AppError):
    """Database error."""
    def __init__(self, message: str = "Database operation failed", details: dict | None = None):
        super().__init__(message, status_code=500, details=details)


# User-friendly error messages
ERROR_MESSAGES = {
    # Queue (student side)
    "already_in_queue": "You are already in the queue for this company.",
    "company_not_found": "Company not found.",
    "company_inactive": "This company is no longer receiving students.",
    "no_company_for_room": "No active company is assigned to this room.",
    "company_required": "Pick the company to act on with company_id.",
    "students_only": "Only students can join interview queues.",
    "not_your_interview": "This interview does not belong to you.",
    "not_cancellable": "Only a waiting interview can be cancelled.",
    "not_reschedulable": "Only a waiting interview can be rescheduled.",
    "invalid_opportunity_type": "Invalid opportunity type.",

    # Room (committee side)
    "room_busy": "An interview is already in progress in this room.",
    "queue_empty": "No student is waiting in this queue.",
    "not_queue_head": "This interview is not next in line; start the queue head first.",
    "not_waiting": "This interview is not waiting.",
    "not_in_progress": "This interview is not in progress.",
    "wrong_room": "You are not assigned to this room.",
    "committee_only": "Committee access only.",
    "admin_only": "Admin access only.",

    # Interviews
    "interview_not_found": "Interview not found.",
    "user_not_found": "User not found.",

    # Admission control / contention
    "rate_limited": "Too many requests. Please wait before trying again.",
    "busy_retry": "The queue is busy right now. Please try again.",

    # General
    "unauthorized": "Please login to access this feature.",
    "forbidden": "You don't have permission to access this resource.",
    "not_found": "The requested resource was not found.",
    "server_error": "Something went wrong on our end. Please try again later.",
    "database_error": "Database connection issue. Please try again later.",
    "validation_error": "Please check your input and try again.",
}


def get_error_message(error_key: str, default: str | None = None) -> str:
    """Get a user-friendly error message."""
    return ERROR_MESSAGES.get(error_key, default or ERROR_MESSAGES["server_error"])


def create_error_response(
    status_code: int,
    message: str,
    details: dict | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    content = {
        "success": False,
        "error": message,
    }

    if details:
        content["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers,
    )


def app_error_response(exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)}
    return create_error_response(exc.status_code, exc.message, exc.details, headers=headers)
