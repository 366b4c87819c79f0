"""
Reconciliation of imported tracking records with the record store.

Stored records win: a re-imported tracking number keeps its stored field
values and only picks up the sheet's provenance (batch, row, column) plus
values for fields the stored copy left empty. Tracking numbers the store has
never seen are added and persisted. Stored records absent from the import
are kept as they are.
"""

from dataclasses import dataclass, field
from threading import Lock
from typing import Iterable, Optional, Sequence
import structlog

from exceptions import StoreUnavailableError
from models.tracking_record import (
    TrackingRecord,
    RecordOrigin,
    BACKFILL_FIELDS,
    PROVENANCE_FIELDS,
)
from services.record_store import RecordStore

logger = structlog.get_logger(__name__)


# ===================
# DATA CLASSES
# ===================

@dataclass
class ReconcileResult:
    """Merged working set and the records that still need persisting."""
    merged: list[TrackingRecord] = field(default_factory=list)
    to_persist: list[TrackingRecord] = field(default_factory=list)


@dataclass
class IngestOutcome:
    """Result of one reconcile-and-persist run."""
    merged: list[TrackingRecord] = field(default_factory=list)
    to_persist: list[TrackingRecord] = field(default_factory=list)
    persisted_count: int = 0
    memory_only: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def local_count(self) -> int:
        return sum(1 for r in self.merged if r.is_local)

    @property
    def imported_count(self) -> int:
        return sum(1 for r in self.merged if not r.is_local)


# ===================
# PURE MERGE
# ===================

def reconcile(
    imported: Sequence[TrackingRecord],
    persisted: Iterable[TrackingRecord],
) -> ReconcileResult:
    """
    Merge freshly imported records with stored ones.

    Rules per imported record, in input order:
    - Stored tracking number: stored fields win; batch and source
      row/column/label come from the import; company, kind, status,
      arrived_at and dispatched_at are backfilled when empty. The result
      is LOCAL.
    - Unknown tracking number: taken unchanged and queued for persisting.
    - Tracking number already seen earlier in this import: folded into
      the earlier result (later provenance, backfill of empty fields) so
      the merged set stays unique.

    Stored records the import does not mention are appended unchanged.

    Args:
        imported: Candidate records from the sheet parser
        persisted: Current record store contents

    Returns:
        ReconcileResult with merged (unique by tracking number) and
        to_persist (new-from-import records only)
    """
    local_map = {record.tracking_number: record for record in persisted}

    # dict keeps first-seen order, which is the output order
    merged: dict[str, TrackingRecord] = {}
    new_keys: set[str] = set()

    for candidate in imported:
        key = candidate.tracking_number

        if key in merged:
            merged[key] = _fold(merged[key], candidate)
            continue

        stored = local_map.pop(key, None)
        if stored is not None:
            merged[key] = _fold(stored, candidate, origin=RecordOrigin.LOCAL)
        else:
            merged[key] = candidate
            new_keys.add(key)

    result = ReconcileResult(
        merged=list(merged.values()) + list(local_map.values()),
        to_persist=[record for key, record in merged.items() if key in new_keys],
    )

    logger.debug(
        "records_reconciled",
        imported=len(imported),
        merged=len(result.merged),
        new=len(result.to_persist),
        local_only=len(local_map),
    )

    return result


def _fold(
    base: TrackingRecord,
    incoming: TrackingRecord,
    origin: Optional[RecordOrigin] = None,
) -> TrackingRecord:
    """Apply an imported record's provenance and backfill values to base."""
    updates = {name: getattr(incoming, name) for name in PROVENANCE_FIELDS}

    for name in BACKFILL_FIELDS:
        if not getattr(base, name):
            updates[name] = getattr(incoming, name)

    if origin is not None:
        updates["origin"] = origin

    return base.model_copy(update=updates)


# ===================
# SERVICE
# ===================

class ReconciliationService:
    """
    Runs reconcile against a record store and persists new records.

    Runs are serialized: reading the store, merging and writing back is not
    atomic across the batch, so two uploads must not interleave.
    """

    def __init__(self, store: RecordStore):
        self.store = store
        self._lock = Lock()

    def ingest(self, imported: Sequence[TrackingRecord]) -> IngestOutcome:
        """
        Merge imported records with the store and persist the new ones.

        A store that cannot be read is treated as empty; a store that cannot
        be written leaves the merged set in memory only. Both add a warning
        instead of failing.

        Args:
            imported: Candidate records from the sheet parser

        Returns:
            IngestOutcome with the merged working set and any warnings
        """
        with self._lock:
            outcome = IngestOutcome()

            try:
                persisted = self.store.get_all()
            except StoreUnavailableError as e:
                logger.warning("store_read_failed", error=e.message)
                outcome.warnings.append("Record store could not be read; using workbook data only")
                outcome.memory_only = True
                persisted = []

            result = reconcile(imported, persisted)
            outcome.merged = result.merged
            outcome.to_persist = result.to_persist

            if result.to_persist:
                try:
                    self.store.put(result.to_persist)
                    outcome.persisted_count = len(result.to_persist)
                except StoreUnavailableError as e:
                    logger.warning(
                        "store_write_failed",
                        count=len(result.to_persist),
                        error=e.message,
                    )
                    outcome.warnings.append("New records could not be saved; changes are kept in memory only")
                    outcome.memory_only = True

            logger.info(
                "records_merged",
                imported=len(imported),
                total=len(outcome.merged),
                local=outcome.local_count,
                new=outcome.imported_count,
                persisted=outcome.persisted_count,
                memory_only=outcome.memory_only,
            )

            return outcome
