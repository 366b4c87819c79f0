"""
Shared test fixtures.

Mock Supabase client, fresh record stores and tracking services, and an API
test client wired to an in-memory record store.
"""

import sys
from pathlib import Path

# Add project directory to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import threading
import time

import pytest
from unittest.mock import patch
from typing import Generator

from services.record_store import InMemoryRecordStore

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """
    Mock Supabase query builder with chainable methods.

    Filters are applied to the table's shared row list when execute() runs,
    so upserts and deletes are visible to later selects.
    """

    def __init__(self, table: "MockSupabaseTable", action: str = "select", payload=None, on_conflict: str = None):
        self._table = table
        self._action = action
        self._payload = payload
        self._on_conflict = on_conflict
        self._filters = []
        self._limit = None
        self._offset = 0
        self._order = None

    def select(self, *args, **kwargs):
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._offset = start
        self._limit = end - start + 1
        return self

    def _matches(self, row: dict) -> bool:
        return all(check(row) for check in self._filters)

    def execute(self) -> MockSupabaseResponse:
        if self._table.client.error is not None:
            raise self._table.client.error

        self._table.client.calls.append((self._table.name, self._action))
        rows = self._table.rows

        if self._action == "upsert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            for item in payload:
                key = item[self._on_conflict]
                existing = [i for i, row in enumerate(rows) if row.get(self._on_conflict) == key]
                if existing:
                    rows[existing[0]] = dict(item)
                else:
                    rows.append(dict(item))
            return MockSupabaseResponse(data=[dict(item) for item in payload])

        if self._action == "delete":
            removed = [row for row in rows if self._matches(row)]
            rows[:] = [row for row in rows if not self._matches(row)]
            return MockSupabaseResponse(data=removed)

        matched = [dict(row) for row in rows if self._matches(row)]
        count = len(matched)
        if self._order is not None:
            column, desc = self._order
            matched.sort(key=lambda row: row.get(column) or "", reverse=desc)

        limit = self._limit
        max_rows = self._table.client.max_rows
        if max_rows is not None:
            limit = max_rows if limit is None else min(limit, max_rows)

        matched = matched[self._offset:]
        if limit is not None:
            matched = matched[:limit]
        return MockSupabaseResponse(data=matched, count=count)


class MockSupabaseTable:
    """Mock Supabase table backed by a list of row dicts."""

    def __init__(self, client: "MockSupabaseClient", name: str):
        self.client = client
        self.name = name

    @property
    def rows(self) -> list:
        return self.client.tables.setdefault(self.name, [])

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self)

    def upsert(self, data, on_conflict: str = "id"):
        return MockSupabaseQuery(self, "upsert", data, on_conflict)

    def delete(self):
        return MockSupabaseQuery(self, "delete")


class MockSupabaseClient:
    """
    Mock Supabase client.

    Set max_rows to cap every select the way the hosted API does.
    """

    def __init__(self, max_rows: int = None):
        self.tables = {}
        self.calls = []
        self.error = None
        self.max_rows = max_rows

    def set_table_data(self, table_name: str, data: list):
        """Configure mock rows for a table."""
        self.tables[table_name] = [dict(row) for row in data]

    def fail_with(self, error: Exception):
        """Make every later query raise error."""
        self.error = error

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        return MockSupabaseTable(self, name)


# ===================
# RECORDING STORE
# ===================

class RecordingStore(InMemoryRecordStore):
    """
    In-memory store with a slow read that logs every written key.

    `overlaps` counts reads that started while another read was still
    running.
    """

    def __init__(self, read_delay: float = 0.05):
        super().__init__()
        self.read_delay = read_delay
        self.written = []
        self.overlaps = 0
        self._active_reads = 0
        self._counter_lock = threading.Lock()
        self.open()

    def get_all(self):
        with self._counter_lock:
            self._active_reads += 1
            if self._active_reads > 1:
                self.overlaps += 1
        try:
            time.sleep(self.read_delay)
            return super().get_all()
        finally:
            with self._counter_lock:
                self._active_reads -= 1

    def put(self, records):
        records = list(records)
        with self._counter_lock:
            self.written.extend(r.tracking_number for r in records)
        return super().put(records)


def run_concurrently(*calls) -> list:
    """
    Start every call at the same moment on its own thread.

    Returns the results in call order; re-raises the first error.
    """
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)
    errors = []

    def worker(index, call):
        barrier.wait()
        try:
            results[index] = call()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    if errors:
        raise errors[0]
    return results


# ===================
# FIXTURES
# ===================

@pytest.fixture
def recording_store():
    """Opened in-memory store with slow reads that records every write."""
    return RecordingStore()


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("tracking_records", [
                {"tracking_number": "YT894185215852", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Any code using get_supabase_client() gets the mock.
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.record_store.get_supabase_client", return_value=mock_supabase):
            yield mock_supabase


@pytest.fixture
def no_default_workbook(monkeypatch):
    """Run without a configured default workbook."""
    from config import settings

    monkeypatch.setattr(settings, "default_workbook_path", None)
    return settings


@pytest.fixture
def memory_store():
    """Opened, empty in-memory record store."""
    from services.record_store import InMemoryRecordStore

    store = InMemoryRecordStore()
    store.open()
    return store


@pytest.fixture
def tracking_service(memory_store, no_default_workbook):
    """Opened tracking service over an empty in-memory store."""
    from services.tracking_service import TrackingService

    service = TrackingService(memory_store)
    service.open()
    return service


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(tracking_service, monkeypatch):
    """
    Create FastAPI test client.

    The app's tracking service is the `tracking_service` fixture; startup
    loads the sample records into it.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/records")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    import services.tracking_service as tracking_module
    from main import app

    monkeypatch.setattr(tracking_module, "_tracking_service", tracking_service)

    with TestClient(app) as client:
        yield client
