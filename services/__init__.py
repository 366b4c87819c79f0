"""
Business logic services.

Each service handles one part of the tracking pipeline.
"""

from services.record_store import (
    RecordStore,
    InMemoryRecordStore,
    SupabaseRecordStore,
    get_record_store,
)
from services.reconciliation_service import (
    ReconciliationService,
    ReconcileResult,
    IngestOutcome,
    reconcile,
)
from services.query_service import (
    RecordView,
    search_records,
    filter_records,
    facet_stats,
)
from services.export_service import ExportService, get_export_service
from services.tracking_service import (
    TrackingService,
    LoadOutcome,
    EditOutcome,
    get_tracking_service,
)

__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "SupabaseRecordStore",
    "get_record_store",
    "ReconciliationService",
    "ReconcileResult",
    "IngestOutcome",
    "reconcile",
    "RecordView",
    "search_records",
    "filter_records",
    "facet_stats",
    "ExportService",
    "get_export_service",
    "TrackingService",
    "LoadOutcome",
    "EditOutcome",
    "get_tracking_service",
]
