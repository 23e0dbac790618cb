from typing import Any, Dict, List, Optional


class AppException(Exception):
    """Base for every failure a service surfaces to the HTTP layer."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Any] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationError(AppException):
    def __init__(self, message: str = "Validation failed", errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=errors or [],
        )


class NotFoundError(AppException):
    def __init__(self, message: str = "Not found"):
        super().__init__(message=message, status_code=404, error_code="NOT_FOUND")


class ForbiddenError(AppException):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message=message, status_code=403, error_code="FORBIDDEN")


class ConflictError(AppException):
    """Operation attempted on a resource in a terminal state."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message=message, status_code=409, error_code="CONFLICT")


class InternalError(AppException):
    def __init__(self, message: str = "An unexpected server error occurred."):
        super().__init__(message=message, status_code=500, error_code="INTERNAL_ERROR")


class GenerationError(Exception):
    """The response generator could not produce text (provider error or timeout)."""
