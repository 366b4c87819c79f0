"""
Tracking service: owns the working set of tracking records.

Runs the ingestion pipeline (parse -> reconcile -> persist), manual edits,
cache clearing, and the query view the API reads from. Failures inside the
pipeline degrade to a smaller data source instead of leaving the working
set empty:

    workbook -> record store -> built-in sample data
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from threading import RLock
from typing import Optional, Union
import structlog

from config import settings
from config.sample_records import (
    SAMPLE_BATCH,
    SAMPLE_KIND,
    SAMPLE_STATUS,
    SAMPLE_TRACKING_NUMBERS,
    SAMPLE_COLUMNS_PER_ROW,
)
from exceptions import StoreUnavailableError, TrackingRecordNotFoundError, WorkbookReadError
from models.tracking_record import (
    TrackingRecord,
    TrackingRecordUpdate,
    EDITABLE_FIELDS,
    RecordFacets,
    RecordOrigin,
    LoadResponse,
)
from parsers.tracking_sheet_parser import parse_workbook
from services.export_service import ExportService, get_export_service
from services.query_service import RecordView, facet_stats
from services.reconciliation_service import ReconciliationService
from services.record_store import RecordStore, InMemoryRecordStore, get_record_store

logger = structlog.get_logger(__name__)


# ===================
# DATA CLASSES
# ===================

@dataclass
class LoadOutcome:
    """What a load produced and where the data came from."""
    source: str  # "workbook", "store" or "sample"
    records: list[TrackingRecord] = field(default_factory=list)
    persisted_count: int = 0
    memory_only: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_response(self) -> LoadResponse:
        return LoadResponse(
            source=self.source,
            total=len(self.records),
            local_count=sum(1 for r in self.records if r.is_local),
            imported_count=sum(1 for r in self.records if not r.is_local),
            persisted_count=self.persisted_count,
            memory_only=self.memory_only,
            warnings=self.warnings,
        )


@dataclass
class EditOutcome:
    """Edited record and whether it reached the record store."""
    record: TrackingRecord
    persisted: bool = True
    warnings: list[str] = field(default_factory=list)


def build_sample_records() -> list[TrackingRecord]:
    """Built-in sample records, laid out four per sheet row."""
    return [
        TrackingRecord(
            tracking_number=number,
            company=company,
            batch=SAMPLE_BATCH,
            kind=SAMPLE_KIND,
            status=SAMPLE_STATUS,
            source_row=index // SAMPLE_COLUMNS_PER_ROW + 1,
            source_column=index % SAMPLE_COLUMNS_PER_ROW,
            source_column_label=label,
            origin=RecordOrigin.IMPORTED,
        )
        for index, (number, label, company) in enumerate(SAMPLE_TRACKING_NUMBERS)
    ]


# ===================
# SERVICE
# ===================

class TrackingService:
    """
    Tracking record business logic.

    The record store is injected; open() must be called before loading.
    """

    def __init__(
        self,
        store: RecordStore,
        export_service: Optional[ExportService] = None,
    ):
        self.store = store
        self.reconciler = ReconciliationService(store)
        self.export_service = export_service or get_export_service()
        self.view = RecordView()
        self.memory_only = False
        self._lock = RLock()

    # ===================
    # LIFECYCLE
    # ===================

    def open(self) -> None:
        """
        Open the record store.

        A store that cannot be opened is replaced by an in-memory one, so
        the service keeps working without persistence.
        """
        try:
            self.store.open()
            self.memory_only = False
        except StoreUnavailableError as e:
            logger.warning("record_store_unavailable_using_memory", error=e.message)
            self.store = InMemoryRecordStore()
            self.store.open()
            self.reconciler = ReconciliationService(self.store)
            self.memory_only = True

    def close(self) -> None:
        self.store.close()

    # ===================
    # LOADING
    # ===================

    def load_workbook(
        self,
        file: Union[str, Path, BytesIO, bytes],
        filename: Optional[str] = None,
    ) -> LoadOutcome:
        """
        Parse a workbook and merge it into the working set.

        Sheets that fail to parse are skipped with a warning. A workbook with
        no tracking numbers at all falls back to the store, then to sample
        data.

        Args:
            file: Workbook path, file-like object or raw bytes
            filename: Original filename, for logging

        Returns:
            LoadOutcome describing the new working set

        Raises:
            WorkbookReadError: If the file is not a readable workbook (the
                working set is left unchanged)
        """
        logger.info("loading_workbook", filename=filename)

        with self._lock:
            parsed = parse_workbook(file)

            warnings = [
                f"Sheet '{error.sheet}' skipped: {error.error}"
                for error in parsed.errors
            ]

            if not parsed.has_data:
                logger.info("workbook_has_no_records", filename=filename)
                warnings.append("No tracking numbers found in workbook")
                return self._load_fallback(warnings)

            ingest = self.reconciler.ingest(parsed.records)
            self.view.replace(ingest.merged)

            outcome = LoadOutcome(
                source="workbook",
                records=ingest.merged,
                persisted_count=ingest.persisted_count,
                memory_only=ingest.memory_only or self.memory_only,
                warnings=warnings + ingest.warnings,
            )

            logger.info(
                "workbook_loaded",
                filename=filename,
                total=len(outcome.records),
                persisted=outcome.persisted_count,
                warnings=len(outcome.warnings),
            )

            return outcome

    def load_default(self) -> LoadOutcome:
        """
        Load the configured default workbook.

        Falls back to the store, then to sample data, when no default
        workbook is configured or it cannot be read.
        """
        with self._lock:
            path = settings.default_workbook_path

            if not path:
                return self._load_fallback([])

            if not Path(path).is_file():
                logger.warning("default_workbook_missing", path=path)
                return self._load_fallback([f"Default workbook not found: {path}"])

            try:
                return self.load_workbook(path, filename=Path(path).name)
            except WorkbookReadError as e:
                logger.warning("default_workbook_unreadable", path=path, error=e.message)
                return self._load_fallback([f"Default workbook could not be read: {e.message}"])

    def _load_fallback(self, warnings: list[str]) -> LoadOutcome:
        """Serve the store contents, or sample data if the store is empty."""
        try:
            stored = self.store.get_all()
        except StoreUnavailableError as e:
            logger.warning("store_read_failed", error=e.message)
            warnings = warnings + ["Record store could not be read; showing sample data"]
            stored = []

        if stored:
            source = "store"
            records = stored
        else:
            source = "sample"
            records = build_sample_records()

        self.view.replace(records)

        logger.info("fallback_loaded", source=source, total=len(records))

        return LoadOutcome(
            source=source,
            records=records,
            memory_only=self.memory_only,
            warnings=warnings,
        )

    # ===================
    # EDITING
    # ===================

    def edit_record(self, tracking_number: str, update: TrackingRecordUpdate) -> EditOutcome:
        """
        Apply a manual edit and persist it.

        Fields left unset in the update keep their current value. The record
        becomes LOCAL, so later imports only backfill its empty fields.

        Args:
            tracking_number: Record to edit
            update: New values for editable fields

        Returns:
            EditOutcome with the edited record

        Raises:
            TrackingRecordNotFoundError: If the tracking number is unknown
        """
        logger.info("editing_record", tracking_number=tracking_number)

        with self._lock:
            current = self._find(tracking_number)

            changes = update.model_dump(include=set(EDITABLE_FIELDS), exclude_none=True)
            edited = current.model_copy(update={**changes, "origin": RecordOrigin.LOCAL})

            outcome = EditOutcome(record=edited)
            try:
                self.store.put([edited])
                outcome.record = self.store.get_by_key(tracking_number) or edited
            except StoreUnavailableError as e:
                logger.warning("record_edit_not_persisted", tracking_number=tracking_number, error=e.message)
                outcome.persisted = False
                outcome.warnings.append("Saved in memory, but the record store could not be updated")

            self._replace_in_view(outcome.record)

            logger.info(
                "record_edited",
                tracking_number=tracking_number,
                fields=sorted(changes),
                persisted=outcome.persisted,
            )

            return outcome

    def _find(self, tracking_number: str) -> TrackingRecord:
        for record in self.view.records:
            if record.tracking_number == tracking_number:
                return record

        try:
            stored = self.store.get_by_key(tracking_number)
        except StoreUnavailableError:
            stored = None

        if stored is None:
            raise TrackingRecordNotFoundError(tracking_number)
        return stored

    def _replace_in_view(self, record: TrackingRecord) -> None:
        for index, existing in enumerate(self.view.records):
            if existing.tracking_number == record.tracking_number:
                self.view.records[index] = record
                return
        self.view.records.append(record)

    # ===================
    # CACHE
    # ===================

    def clear_store(self) -> LoadOutcome:
        """
        Delete every stored record and reload the default data.

        Raises:
            StoreUnavailableError: If the store could not be cleared
        """
        with self._lock:
            self.store.clear()
            logger.info("record_cache_cleared")
            return self.load_default()

    # ===================
    # QUERIES
    # ===================

    def records(self) -> list[TrackingRecord]:
        """The whole working set."""
        return list(self.view.records)

    def visible(self) -> list[TrackingRecord]:
        """Working set narrowed by the current search or facets."""
        return self.view.visible()

    def search(self, term: str) -> list[TrackingRecord]:
        return self.view.search_by(term)

    def filter(self, facets: RecordFacets) -> list[TrackingRecord]:
        return self.view.filter_by(facets)

    def stats(self) -> dict:
        return facet_stats(self.view.records)

    def export_workbook(self) -> BytesIO:
        """Excel export of the currently visible records, one sheet per batch."""
        return self.export_service.generate_batch_workbook(self.visible())


# Singleton instance
_tracking_service: Optional[TrackingService] = None


def get_tracking_service() -> TrackingService:
    """Get or create TrackingService instance."""
    global _tracking_service
    if _tracking_service is None:
        _tracking_service = TrackingService(get_record_store())
    return _tracking_service
