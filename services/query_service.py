"""
Search and facet filtering over the tracking working set.

Free-text search and facet filters are two separate ways to narrow the
list; starting one clears the other.
"""

from collections import Counter
from typing import Iterable, Optional, Sequence

from models.tracking_record import TrackingRecord, RecordFacets

# Fields matched case-sensitively by free-text search
_SEARCH_FIELDS = (
    "company",
    "recipient",
    "phone",
    "address",
    "kind",
    "status",
    "batch",
)


def search_records(records: Iterable[TrackingRecord], term: str) -> list[TrackingRecord]:
    """
    Free-text search.

    Tracking number matches case-insensitively; the other text fields
    match case-sensitively. A record matches if any field contains the term.
    An empty term matches everything.
    """
    records = list(records)
    if not term:
        return records

    lowered = term.lower()
    return [
        record
        for record in records
        if lowered in record.tracking_number.lower()
        or any(term in getattr(record, name) for name in _SEARCH_FIELDS)
    ]


def filter_records(
    records: Iterable[TrackingRecord],
    facets: Optional[RecordFacets] = None,
) -> list[TrackingRecord]:
    """Keep records equal to every active facet."""
    active = (facets or RecordFacets()).active()
    return [
        record
        for record in records
        if all(getattr(record, name) == value for name, value in active.items())
    ]


def facet_stats(records: Sequence[TrackingRecord]) -> dict:
    """
    Record counts per facet value.

    Kind and status skip empty values; company and batch count them under "".
    """
    return {
        "total": len(records),
        "local_count": sum(1 for r in records if r.is_local),
        "imported_count": sum(1 for r in records if not r.is_local),
        "by_company": dict(Counter(r.company for r in records)),
        "by_batch": dict(Counter(r.batch for r in records)),
        "by_kind": dict(Counter(r.kind for r in records if r.kind)),
        "by_status": dict(Counter(r.status for r in records if r.status)),
    }


class RecordView:
    """
    The working set plus the query currently applied to it.

    search_by() resets the facets; filter_by() clears the search term.
    """

    def __init__(self, records: Optional[Sequence[TrackingRecord]] = None):
        self.records: list[TrackingRecord] = list(records or [])
        self.search_term = ""
        self.facets = RecordFacets()

    def replace(self, records: Sequence[TrackingRecord]) -> None:
        """Swap in a new working set and drop the current query."""
        self.records = list(records)
        self.reset()

    def reset(self) -> None:
        self.search_term = ""
        self.facets = RecordFacets()

    def search_by(self, term: str) -> list[TrackingRecord]:
        self.facets = RecordFacets()
        self.search_term = term or ""
        return self.visible()

    def filter_by(self, facets: RecordFacets) -> list[TrackingRecord]:
        self.search_term = ""
        self.facets = facets
        return self.visible()

    def visible(self) -> list[TrackingRecord]:
        if self.search_term:
            return search_records(self.records, self.search_term)
        return filter_records(self.records, self.facets)
