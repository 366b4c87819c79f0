"""
Custom exception classes for the application.

All errors carry a machine-readable code, an HTTP status and a details dict
so route handlers can render them without special cases.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "TRACKING_RECORD_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None,
        status_code: int = 500
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=status_code,
            details={"operation": operation, **(details or {})}
        )


# ===================
# WORKBOOK / SHEET ERRORS
# ===================

class WorkbookReadError(ValidationError):
    """Uploaded file could not be opened as a workbook."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="WORKBOOK_READ_ERROR",
            message=message,
            details=details
        )


class SheetParseError(ValidationError):
    """A single sheet could not be turned into records."""

    def __init__(self, sheet: str, reason: str):
        super().__init__(
            code="SHEET_PARSE_ERROR",
            message=f"Failed to parse sheet '{sheet}': {reason}",
            details={"sheet": sheet, "reason": reason}
        )


# ===================
# RECORD STORE ERRORS
# ===================

class StoreUnavailableError(DatabaseError):
    """Record store cannot be opened, read or written (503)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            operation=operation,
            message=message,
            details=details,
            status_code=503
        )
        self.code = "STORE_UNAVAILABLE"


# ===================
# TRACKING RECORD ERRORS
# ===================

class TrackingRecordNotFoundError(NotFoundError):
    """Tracking record not found in the working set."""

    def __init__(self, tracking_number: str):
        super().__init__(
            resource="Tracking record",
            identifier=tracking_number,
            code="TRACKING_RECORD_NOT_FOUND"
        )

