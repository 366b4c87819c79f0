"""
Record store: durable persistence for tracking records.

Keyed by tracking number, with secondary lookup by batch and by company.
The store knows nothing about parsing or merging; it upserts what it is
given and stamps `updated_at` itself.

Two backends:
    InMemoryRecordStore: process-local dicts (memory-only mode, tests)
    SupabaseRecordStore: `tracking_records` table in Supabase
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from threading import Lock, RLock
from typing import Any, Iterable, Optional
import structlog

from config import settings, get_supabase_client
from exceptions import StoreUnavailableError
from models.tracking_record import TrackingRecord

logger = structlog.get_logger(__name__)

# String columns that may come back from the database as NULL
_TEXT_FIELDS = (
    "company",
    "batch",
    "kind",
    "status",
    "arrived_at",
    "dispatched_at",
    "recipient",
    "phone",
    "address",
    "source_column_label",
)

# Supabase returns at most this many rows per select by default
SELECT_PAGE_SIZE = 1000


class _WriteClock:
    """
    Issues write timestamps that strictly increase.

    Two writes inside the same clock tick (or after the wall clock steps
    back) still get distinct, ordered stamps.
    """

    def __init__(self):
        self._last: Optional[datetime] = None
        self._lock = Lock()

    def stamp(self) -> datetime:
        with self._lock:
            now = datetime.now(timezone.utc)
            if self._last is not None and now <= self._last:
                now = self._last + timedelta(microseconds=1)
            self._last = now
            return now


class RecordStore(ABC):
    """
    Persistence contract for tracking records.

    All methods raise StoreUnavailableError when the backing medium cannot
    be reached or the store is closed. Callers treat that as recoverable.
    """

    def __init__(self):
        self._clock = _WriteClock()

    @abstractmethod
    def open(self) -> None:
        """Initialize the store. Safe to call more than once."""

    @abstractmethod
    def close(self) -> None:
        """Release the store. Later calls fail until open() again."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    def get_all(self) -> list[TrackingRecord]:
        ...

    @abstractmethod
    def get_by_key(self, tracking_number: str) -> Optional[TrackingRecord]:
        ...

    @abstractmethod
    def get_by_batch(self, batch: str) -> list[TrackingRecord]:
        ...

    @abstractmethod
    def get_by_company(self, company: str) -> list[TrackingRecord]:
        ...

    @abstractmethod
    def put(self, records: Iterable[TrackingRecord]) -> None:
        """Upsert records by tracking number, stamping updated_at."""

    @abstractmethod
    def clear(self) -> None:
        """Delete every record."""

    def _stamped(self, records: Iterable[TrackingRecord]) -> list[TrackingRecord]:
        """Copies of records with a fresh updated_at each."""
        return [
            record.model_copy(update={"updated_at": self._clock.stamp()})
            for record in records
        ]


# ===================
# IN-MEMORY BACKEND
# ===================

class InMemoryRecordStore(RecordStore):
    """
    Record store held in process memory.

    Records are replaced whole under a lock, so readers never observe a
    partially written record. Index sets are rebuilt on open() and kept in
    step on every put.
    """

    def __init__(self, records: Optional[Iterable[TrackingRecord]] = None):
        super().__init__()
        self._lock = RLock()
        self._records: dict[str, TrackingRecord] = {}
        self._by_batch: dict[str, set[str]] = {}
        self._by_company: dict[str, set[str]] = {}
        self._open = False
        for record in records or []:
            self._records[record.tracking_number] = record

    def open(self) -> None:
        with self._lock:
            self._rebuild_indexes()
            self._open = True
        logger.debug("record_store_opened", backend="memory", count=len(self._records))

    def close(self) -> None:
        with self._lock:
            self._open = False
        logger.debug("record_store_closed", backend="memory")

    @property
    def is_open(self) -> bool:
        return self._open

    def get_all(self) -> list[TrackingRecord]:
        with self._lock:
            self._ensure_open("select")
            return [record.model_copy() for record in self._records.values()]

    def get_by_key(self, tracking_number: str) -> Optional[TrackingRecord]:
        with self._lock:
            self._ensure_open("select")
            record = self._records.get(tracking_number)
            return record.model_copy() if record else None

    def get_by_batch(self, batch: str) -> list[TrackingRecord]:
        with self._lock:
            self._ensure_open("select")
            keys = self._by_batch.get(batch, set())
            return [self._records[key].model_copy() for key in sorted(keys)]

    def get_by_company(self, company: str) -> list[TrackingRecord]:
        with self._lock:
            self._ensure_open("select")
            keys = self._by_company.get(company, set())
            return [self._records[key].model_copy() for key in sorted(keys)]

    def put(self, records: Iterable[TrackingRecord]) -> None:
        with self._lock:
            self._ensure_open("upsert")
            stamped = self._stamped(records)
            for record in stamped:
                previous = self._records.get(record.tracking_number)
                if previous is not None:
                    self._unindex(previous)
                self._records[record.tracking_number] = record
                self._index(record)
        logger.debug("records_stored", backend="memory", count=len(stamped))

    def clear(self) -> None:
        with self._lock:
            self._ensure_open("delete")
            self._records.clear()
            self._by_batch.clear()
            self._by_company.clear()
        logger.info("record_store_cleared", backend="memory")

    # ===================
    # INDEX MAINTENANCE
    # ===================

    def _ensure_open(self, operation: str) -> None:
        if not self._open:
            raise StoreUnavailableError(operation, "record store is closed")

    def _rebuild_indexes(self) -> None:
        self._by_batch = {}
        self._by_company = {}
        for record in self._records.values():
            self._index(record)

    def _index(self, record: TrackingRecord) -> None:
        self._by_batch.setdefault(record.batch, set()).add(record.tracking_number)
        self._by_company.setdefault(record.company, set()).add(record.tracking_number)

    def _unindex(self, record: TrackingRecord) -> None:
        self._by_batch.get(record.batch, set()).discard(record.tracking_number)
        self._by_company.get(record.company, set()).discard(record.tracking_number)


# ===================
# SUPABASE BACKEND
# ===================

class SupabaseRecordStore(RecordStore):
    """
    Record store backed by a Supabase table.

    Table and indexes are created by migrations/001_tracking_records.sql.
    Upserts conflict on tracking_number, so each row is replaced atomically.
    """

    def __init__(
        self,
        client: Any = None,
        table: Optional[str] = None,
        page_size: int = SELECT_PAGE_SIZE,
    ):
        super().__init__()
        self.db = client
        self.table = table or settings.records_table
        self.page_size = page_size
        self._open = False

    def open(self) -> None:
        if self._open:
            return

        try:
            if self.db is None:
                self.db = get_supabase_client()
            # Touch the table so a missing migration fails here, not mid-ingest
            self.db.table(self.table).select("tracking_number").limit(1).execute()
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.error("record_store_open_failed", backend="supabase", error=str(e))
            raise StoreUnavailableError("open", str(e)) from e

        self._open = True
        logger.info("record_store_opened", backend="supabase", table=self.table)

    def close(self) -> None:
        self._open = False
        logger.debug("record_store_closed", backend="supabase")

    @property
    def is_open(self) -> bool:
        return self._open

    def get_all(self) -> list[TrackingRecord]:
        rows = self._select("get_all")
        return [self._row_to_record(row) for row in rows]

    def get_by_key(self, tracking_number: str) -> Optional[TrackingRecord]:
        rows = self._select("get_by_key", tracking_number=tracking_number, limit=1)
        return self._row_to_record(rows[0]) if rows else None

    def get_by_batch(self, batch: str) -> list[TrackingRecord]:
        rows = self._select("get_by_batch", batch=batch)
        return [self._row_to_record(row) for row in rows]

    def get_by_company(self, company: str) -> list[TrackingRecord]:
        rows = self._select("get_by_company", company=company)
        return [self._row_to_record(row) for row in rows]

    def put(self, records: Iterable[TrackingRecord]) -> None:
        self._ensure_open("upsert")
        stamped = self._stamped(records)
        if not stamped:
            return

        rows = [self._record_to_row(record) for record in stamped]

        try:
            self.db.table(self.table).upsert(rows, on_conflict="tracking_number").execute()
        except Exception as e:
            logger.error("record_upsert_failed", count=len(rows), error=str(e))
            raise StoreUnavailableError("upsert", str(e)) from e

        logger.info("records_stored", backend="supabase", count=len(rows))

    def clear(self) -> None:
        self._ensure_open("delete")

        try:
            # Supabase refuses unfiltered deletes
            self.db.table(self.table).delete().neq("tracking_number", "").execute()
        except Exception as e:
            logger.error("record_store_clear_failed", error=str(e))
            raise StoreUnavailableError("delete", str(e)) from e

        logger.info("record_store_cleared", backend="supabase")

    # ===================
    # HELPERS
    # ===================

    def _ensure_open(self, operation: str) -> None:
        if not self._open:
            raise StoreUnavailableError(operation, "record store is closed")

    def _select(self, operation: str, limit: Optional[int] = None, **filters) -> list[dict]:
        """
        Rows matching every filter.

        Without a limit, pages through the table so results are never cut
        off at the server's row cap.
        """
        self._ensure_open("select")

        rows: list[dict] = []
        offset = 0
        page_size = limit or self.page_size

        try:
            while True:
                query = self.db.table(self.table).select("*")
                for column, value in filters.items():
                    query = query.eq(column, value)

                # Stable order so pages neither overlap nor skip rows
                query = query.order("tracking_number")
                query = query.range(offset, offset + page_size - 1)
                page = query.execute().data or []

                rows.extend(page)
                if limit or len(page) < page_size:
                    break
                offset += page_size
        except Exception as e:
            logger.error("record_select_failed", operation=operation, error=str(e))
            raise StoreUnavailableError("select", str(e)) from e

        return rows

    @staticmethod
    def _record_to_row(record: TrackingRecord) -> dict:
        return record.model_dump(mode="json")

    @staticmethod
    def _row_to_record(row: dict) -> TrackingRecord:
        data = dict(row)
        for name in _TEXT_FIELDS:
            if data.get(name) is None:
                data[name] = ""
        return TrackingRecord.model_validate(data)


# ===================
# FACTORY
# ===================

_record_store: Optional[RecordStore] = None


def get_record_store() -> RecordStore:
    """Get or create the configured record store (not yet opened)."""
    global _record_store
    if _record_store is None:
        if settings.record_store_backend == "supabase":
            _record_store = SupabaseRecordStore()
        else:
            _record_store = InMemoryRecordStore()
    return _record_store
