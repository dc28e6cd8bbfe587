"""
Custom exceptions for the application.
Project: Rental Order Engine

Domain-specific exceptions for centralized error handling.

NOTE: BusinessValidationError is deliberately distinct from pydantic.ValidationError.
- pydantic.ValidationError: malformed input shape/types (FastAPI → 422)
- BusinessValidationError: business rule violations (our handler → 422)
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "DuplicateError",
    "BusinessValidationError",
    "ValidationError",       # alias of BusinessValidationError
    "ConflictError",
    "AvailabilityConflictError",
    "AuthorizationError",
    "PersistenceError",
    "ExternalServiceError",
]


class AppException(Exception):
    """
    Base exception for the application.

    Every custom exception inherits from this class.

    Attributes:
        status_code: HTTP status code returned to the client
        error_code: Stable error identifier for the frontend
        detail: Human readable message
        extra: Additional data for the frontend
    """

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            detail: Detailed error message
            error_code: Stable identifier (default: the class one)
            extra: Additional data for the frontend (default: None)
        """
        self.detail = detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """Raised when a resource does not exist."""

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Resource not found",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class DuplicateError(AppException):
    """
    Raised when creating a resource that already exists.

    Used for unique constraints such as discount/fee template names.
    """

    status_code: int = 409
    error_code: str = "DUPLICATE_RESOURCE"

    def __init__(
        self,
        detail: str = "Resource already exists",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessValidationError(ValueError, AppException):
    """
    Raised for business rule violations.

    Inherits from ValueError so Pydantic validators can catch it.

    Examples:
        - "A discount cannot have both an amount and a percentage"
        - "Event end date cannot be before the start date"
        - "Cannot transition from 'completed' to 'confirmed'"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validation failed",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Call AppException.__init__ directly to bypass ValueError
        AppException.__init__(self, detail, error_code, extra)


# Alias
ValidationError = BusinessValidationError


class ConflictError(AppException):
    """
    Raised for state conflicts.

    Used when an operation cannot run because of the current state of the
    resource, e.g. the order changed since the draft was loaded.
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"

    def __init__(
        self,
        detail: str = "State conflict",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class AvailabilityConflictError(ConflictError):
    """
    Raised when one or more units are already booked for the requested dates.

    The unit names are exposed in extra["units"].
    """

    error_code: str = "AVAILABILITY_CONFLICT"

    def __init__(
        self,
        unit_names: list[str],
        detail: Optional[str] = None,
    ) -> None:
        self.unit_names = list(unit_names)
        if detail is None:
            detail = (
                "The following units are not available for the selected dates: "
                f"{', '.join(self.unit_names)}. Adjust the dates or remove the conflicting items."
            )
        super().__init__(detail, extra={"units": self.unit_names})


class AuthorizationError(AppException):
    """
    Raised when no authenticated actor is attached to the operation.
    """

    status_code: int = 403
    error_code: str = "FORBIDDEN"

    def __init__(
        self,
        detail: str = "Authentication required",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class PersistenceError(AppException):
    """
    Raised when a database write fails.

    The surrounding transaction has been rolled back; callers should reload
    the order before retrying.
    """

    status_code: int = 500
    error_code: str = "PERSISTENCE_ERROR"

    def __init__(
        self,
        detail: str = "Failed to save changes",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class ExternalServiceError(AppException):
    """
    Raised by distance lookup and notification adapters.

    Never propagated out of a save: callers log it and carry on.
    """

    status_code: int = 502
    error_code: str = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        detail: str = "External service unavailable",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)
