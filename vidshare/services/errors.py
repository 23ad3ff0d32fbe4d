from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AppException(Exception):
    """Base class for all application exceptions."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "UNKNOWN_ERROR"
        self.details = details or {}


class StorageWriteFailure(AppException):
    """A part or whole-file upload was rejected by object storage."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="STORAGE_WRITE_FAILED", details=details)


class StorageReadFailure(AppException):
    """A part or whole-file download failed or returned no data."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="STORAGE_READ_FAILED", details=details)


class PersistenceFailure(AppException):
    """A database insert, update or delete was rejected."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="PERSISTENCE_FAILED", details=details)


class AuthorizationFailure(AppException):
    """The record is disabled, not downloadable, or the password did not match."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="AUTHORIZATION_FAILED", details=details)


class NotFound(AppException):
    """No record exists for the given identifier."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="NOT_FOUND", details=details)


class ValidationFailure(AppException):
    """Exception raised when input validation fails."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        too_large: bool = False,
    ):
        super().__init__(
            message,
            error_code="PAYLOAD_TOO_LARGE" if too_large else "VALIDATION_ERROR",
            details=details,
        )


def to_http_exception(exc: AppException) -> HTTPException:
    """Convert AppException to HTTPException for FastAPI."""
    status_code_map = {
        "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
        "PAYLOAD_TOO_LARGE": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        "NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "AUTHORIZATION_FAILED": status.HTTP_403_FORBIDDEN,
        "STORAGE_WRITE_FAILED": status.HTTP_502_BAD_GATEWAY,
        "STORAGE_READ_FAILED": status.HTTP_502_BAD_GATEWAY,
        "PERSISTENCE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    status_code = status_code_map.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    detail = {
        "error_code": exc.error_code,
        "message": exc.message,
        "details": exc.details,
    }

    return HTTPException(status_code=status_code, detail=detail)
