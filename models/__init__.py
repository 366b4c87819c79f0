"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.tracking_record import (
    RecordOrigin,
    TrackingRecord,
    TrackingRecordUpdate,
    RecordFacets,
    RecordListResponse,
    RecordStatsResponse,
    LoadResponse,
    RecordEditResponse,
    EDITABLE_FIELDS,
    BACKFILL_FIELDS,
    PROVENANCE_FIELDS,
)

__all__ = [
    # Base
    "BaseSchema",

    # Tracking records
    "RecordOrigin",
    "TrackingRecord",
    "TrackingRecordUpdate",
    "RecordFacets",
    "RecordListResponse",
    "RecordStatsResponse",
    "LoadResponse",
    "RecordEditResponse",
    "EDITABLE_FIELDS",
    "BACKFILL_FIELDS",
    "PROVENANCE_FIELDS",
]
