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
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=details
        )

class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details=details
        )

class InsufficientBalanceError(AppException):
    """Raised when a leave balance cannot cover the requested days. Nothing is written."""
    def __init__(self, leave_type: str, available: int, requested: int):
        self.leave_type = leave_type
        self.available = available
        self.requested = requested
        super().__init__(
            message=f"Insufficient {leave_type} leave balance. Requested: {requested}, Remaining: {available}",
            status_code=409,
            error_code="INSUFFICIENT_BALANCE",
            details={"leave_type": leave_type, "available": available, "requested": requested}
        )

class AlreadyProcessedError(AppException):
    def __init__(self, request_id: int, status: str, action: str):
        self.status = status
        super().__init__(
            message=f"Leave request {request_id} is already {status}; cannot {action}",
            status_code=409,
            error_code="ALREADY_PROCESSED",
            details={"request_id": request_id, "status": status, "action": action}
        )

class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )

class ConcurrencyConflictError(AppException):
    def __init__(self, message: str = "The resource is busy, please retry"):
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONCURRENCY_CONFLICT"
        )

class PersistenceError(AppException):
    def __init__(self, message: str = "A storage error occurred"):
        super().__init__(
            message=message,
            status_code=500,
            error_code="PERSISTENCE_ERROR"
        )
