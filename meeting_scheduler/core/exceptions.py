from typing import Any, Dict, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class ValidationError(AppException):
    """Malformed or rule-breaking input (empty decline reason, start >= end, ...)."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=details
        )

class ConflictError(AppException):
    """Slot unavailable or overlapping an accepted meeting. Carries the meeting that blocks it."""
    def __init__(self, message: str, conflicting_meeting=None):
        self.conflicting_meeting = conflicting_meeting
        details = None
        if conflicting_meeting is not None:
            details = {"conflicting_meeting_id": conflicting_meeting.id}
        super().__init__(
            message=message,
            status_code=409,
            error_code="MEETING_CONFLICT",
            details=details
        )

class InvalidStateTransitionError(AppException):
    def __init__(self, current_status: str, action: str):
        self.current_status = current_status
        self.action = action
        super().__init__(
            message=f"Cannot {action} meeting in '{current_status}' status",
            status_code=409,
            error_code="INVALID_STATE_TRANSITION",
            details={"current_status": current_status, "action": action}
        )

class StaleStateError(AppException):
    def __init__(self, meeting_id: int, expected_status: str):
        super().__init__(
            message="Meeting was modified by another request. Reload and try again.",
            status_code=409,
            error_code="STALE_STATE",
            details={"meeting_id": meeting_id, "expected_status": expected_status}
        )

class UnauthorizedActorError(AppException):
    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="UNAUTHORIZED_ACTOR"
        )

class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND"
        )

class ServiceUnavailableError(AppException):
    def __init__(self, message: str = "The service is temporarily unavailable. Please retry."):
        super().__init__(
            message=message,
            status_code=503,
            error_code="SERVICE_UNAVAILABLE"
        )
