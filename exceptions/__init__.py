"""
Custom exceptions module.

Base errors map to HTTP statuses; domain errors specialize them.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    DatabaseError,

    # Workbook / sheet parsing
    WorkbookReadError,
    SheetParseError,

    # Record store
    StoreUnavailableError,

    # Tracking records
    TrackingRecordNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "DatabaseError",

    # Workbook / sheet parsing
    "WorkbookReadError",
    "SheetParseError",

    # Record store
    "StoreUnavailableError",

    # Tracking records
    "TrackingRecordNotFoundError",
]
