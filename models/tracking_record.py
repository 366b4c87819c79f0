"""
Tracking record schemas for validation and serialization.

A tracking record is one parcel, identified by its tracking number. Records
come from workbook imports or from manual edits; `origin` tells which.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models.base import BaseSchema


class RecordOrigin(str, Enum):
    """Where a record's field values were last set."""
    LOCAL = "local"        # Manual edit, or merged with a stored record
    IMPORTED = "imported"  # Straight from a workbook sheet


# Fields a manual edit may overwrite (import only backfills them when empty)
EDITABLE_FIELDS = (
    "kind",
    "status",
    "arrived_at",
    "dispatched_at",
    "recipient",
    "phone",
    "address",
)

# Fields an import backfills on an existing record
BACKFILL_FIELDS = (
    "company",
    "kind",
    "status",
    "arrived_at",
    "dispatched_at",
)

# Provenance fields an import always overrides on an existing record
PROVENANCE_FIELDS = (
    "batch",
    "source_row",
    "source_column",
    "source_column_label",
)


MOBILE_PHONE_PATTERN = re.compile(r"^1[3-9]\d{9}$")


# ===================
# RECORD SCHEMAS
# ===================

class TrackingRecord(BaseSchema):
    """One parcel's tracking data."""

    tracking_number: str = Field(
        ...,
        min_length=1,
        description="Courier tracking number (primary key)"
    )
    company: str = Field("", description="Carrier name, empty when unidentified")
    batch: str = Field("", description="Sheet the record was last parsed from")
    kind: str = Field("", description="Classification, e.g. 正常 / 名字错误")
    status: str = Field("", description="Workflow state, e.g. 滞留仓库 / 已发出")
    arrived_at: str = Field("", description="Warehouse arrival time (free text)")
    dispatched_at: str = Field("", description="Dispatch time (free text)")
    recipient: str = ""
    phone: str = ""
    address: str = ""

    source_row: int = Field(0, ge=0, description="Row index in the source sheet")
    source_column: int = Field(1, ge=0, description="Column index of the tracking number")
    source_column_label: str = Field("", description="Header text at source_column")

    origin: RecordOrigin = RecordOrigin.IMPORTED
    updated_at: Optional[datetime] = Field(
        None,
        description="Stamped by the record store on every write"
    )

    @property
    def is_local(self) -> bool:
        return self.origin == RecordOrigin.LOCAL


class TrackingRecordUpdate(BaseSchema):
    """
    Manual edit of a tracking record.

    Only the fields that are set are overwritten; the record's origin
    becomes LOCAL.
    """

    kind: Optional[str] = Field(None, max_length=50)
    status: Optional[str] = Field(None, max_length=50)
    arrived_at: Optional[str] = Field(None, max_length=50)
    dispatched_at: Optional[str] = Field(None, max_length=50)
    recipient: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        """Empty clears the phone; anything else must be a mobile number."""
        if v is None:
            return v
        v = v.strip()
        if v and not MOBILE_PHONE_PATTERN.match(v):
            raise ValueError("Phone must be an 11-digit mobile number starting with 13-19")
        return v


class RecordFacets(BaseModel):
    """
    Equality filters on categorical fields, combined with AND.

    None leaves a field unconstrained. Any string, including "" and "all",
    is a value to match.
    """

    batch: Optional[str] = None
    company: Optional[str] = None
    kind: Optional[str] = None
    status: Optional[str] = None

    def active(self) -> dict[str, str]:
        """Facets that actually constrain the result."""
        return {
            name: value
            for name, value in self.model_dump().items()
            if value is not None
        }


# ===================
# RESPONSE SCHEMAS
# ===================

class RecordListResponse(BaseModel):
    """Visible records plus the query that produced them."""
    data: list[TrackingRecord]
    total: int
    search: str = ""
    facets: RecordFacets = Field(default_factory=RecordFacets)


class RecordStatsResponse(BaseModel):
    """Counters for the dashboard header."""
    total: int
    local_count: int
    imported_count: int
    by_company: dict[str, int]
    by_batch: dict[str, int]
    by_kind: dict[str, int]
    by_status: dict[str, int]


class LoadResponse(BaseModel):
    """Outcome of an upload or reload."""
    source: str = Field(..., description="workbook, store or sample")
    total: int
    local_count: int
    imported_count: int
    persisted_count: int
    memory_only: bool = False
    warnings: list[str] = Field(default_factory=list)


class RecordEditResponse(BaseModel):
    """Edited record and whether the record store accepted it."""
    data: TrackingRecord
    persisted: bool
    warnings: list[str] = Field(default_factory=list)
