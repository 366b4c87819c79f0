"""
Unit tests for TrackingService.

Covers the load fallback chain (workbook -> store -> sample data), manual
edits, cache clearing and degraded memory-only operation.
"""

import pytest

from config.sample_records import SAMPLE_BATCH, SAMPLE_TRACKING_NUMBERS
from exceptions import SheetParseError, StoreUnavailableError, TrackingRecordNotFoundError, WorkbookReadError
from models.tracking_record import EDITABLE_FIELDS, RecordFacets, RecordOrigin, TrackingRecordUpdate
from services.record_store import InMemoryRecordStore, SupabaseRecordStore
from services.tracking_service import TrackingService, build_sample_records
from tests.conftest import run_concurrently
from tests.factories import TrackingRecordFactory, build_workbook


class WriteFailingStore(InMemoryRecordStore):
    """In-memory store that rejects every write."""

    def put(self, records):
        raise StoreUnavailableError("upsert", "store offline")


def tracking_workbook(*rows, sheet="6月1日"):
    """Workbook bytes with one sheet of (tracking number, status) rows."""
    return build_workbook({sheet: [["快递单号", "状态"], *[list(row) for row in rows]]})


# ===================
# SAMPLE DATA
# ===================

class TestBuildSampleRecords:
    """Tests for the built-in sample dataset."""

    def test_twenty_records(self):
        records = build_sample_records()

        assert len(records) == len(SAMPLE_TRACKING_NUMBERS) == 20
        assert len({r.tracking_number for r in records}) == 20
        assert all(r.batch == SAMPLE_BATCH for r in records)
        assert all(r.origin == RecordOrigin.IMPORTED for r in records)

    def test_layout_four_per_row(self):
        records = build_sample_records()

        assert (records[0].source_row, records[0].source_column) == (1, 0)
        assert (records[5].source_row, records[5].source_column) == (2, 1)
        assert records[0].source_column_label == "中通"


# ===================
# LOADING
# ===================

class TestLoadDefault:
    """Tests for the load fallback chain."""

    def test_sample_data_when_store_empty(self, tracking_service):
        outcome = tracking_service.load_default()

        assert outcome.source == "sample"
        assert len(outcome.records) == 20
        assert len(tracking_service.records()) == 20

    def test_store_contents_when_present(self, tracking_service, memory_store):
        memory_store.put(TrackingRecordFactory.create_batch(3))

        outcome = tracking_service.load_default()

        assert outcome.source == "store"
        assert len(tracking_service.records()) == 3

    def test_default_workbook(self, tracking_service, monkeypatch, tmp_path):
        from config import settings

        path = tmp_path / "tracking.xlsx"
        path.write_bytes(tracking_workbook(("YT894185215852", "滞留仓库")))
        monkeypatch.setattr(settings, "default_workbook_path", str(path))

        outcome = tracking_service.load_default()

        assert outcome.source == "workbook"
        assert [r.tracking_number for r in tracking_service.records()] == ["YT894185215852"]

    def test_missing_default_workbook_falls_back(self, tracking_service, monkeypatch, tmp_path):
        from config import settings

        monkeypatch.setattr(settings, "default_workbook_path", str(tmp_path / "missing.xlsx"))

        outcome = tracking_service.load_default()

        assert outcome.source == "sample"
        assert len(outcome.warnings) == 1

    def test_unreadable_default_workbook_falls_back(self, tracking_service, monkeypatch, tmp_path):
        from config import settings

        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"not a workbook")
        monkeypatch.setattr(settings, "default_workbook_path", str(path))

        outcome = tracking_service.load_default()

        assert outcome.source == "sample"
        assert outcome.warnings


class TestLoadWorkbook:
    """Tests for workbook ingestion."""

    def test_merges_and_persists(self, tracking_service, memory_store):
        content = tracking_workbook(
            ("YT894185215852", "滞留仓库"),
            ("SF1234567890", "已发出"),
        )

        outcome = tracking_service.load_workbook(content, filename="tracking.xlsx")
        response = outcome.to_response()

        assert outcome.source == "workbook"
        assert response.total == 2
        assert response.imported_count == 2
        assert response.local_count == 0
        assert response.persisted_count == 2
        assert not response.memory_only
        assert len(memory_store.get_all()) == 2

    def test_stored_records_survive_reupload(self, tracking_service, memory_store):
        memory_store.put([
            TrackingRecordFactory.create(tracking_number="YT894185215852", status="已发出"),
            TrackingRecordFactory.create(tracking_number="SF0000000009"),
        ])

        outcome = tracking_service.load_workbook(tracking_workbook(("YT894185215852", "待处理")))

        merged = {r.tracking_number: r for r in outcome.records}
        assert merged["YT894185215852"].status == "已发出"
        assert merged["YT894185215852"].origin == RecordOrigin.LOCAL
        assert "SF0000000009" in merged
        assert outcome.persisted_count == 0

    def test_concurrent_uploads_are_serialized(self, recording_store, no_default_workbook):
        service = TrackingService(recording_store)
        service.open()
        first = tracking_workbook(("YT894185215852", "滞留仓库"), ("SF1234567890", "已发出"))
        second = tracking_workbook(("SF1234567890", "待处理"), ("YT893990509270", "待处理"))

        outcomes = run_concurrently(
            lambda: service.load_workbook(first, filename="first.xlsx"),
            lambda: service.load_workbook(second, filename="second.xlsx"),
        )

        assert recording_store.overlaps == 0
        assert sorted(recording_store.written) == ["SF1234567890", "YT893990509270", "YT894185215852"]
        assert sum(outcome.persisted_count for outcome in outcomes) == 3
        numbers = [r.tracking_number for r in service.records()]
        assert len(numbers) == len(set(numbers))

    def test_unreadable_upload_leaves_working_set(self, tracking_service):
        tracking_service.load_default()
        before = tracking_service.records()

        with pytest.raises(WorkbookReadError):
            tracking_service.load_workbook(b"not a workbook")

        assert tracking_service.records() == before

    def test_workbook_without_records_falls_back(self, tracking_service):
        content = build_workbook({"说明": [["备注"], ["无数据"]]})

        outcome = tracking_service.load_workbook(content)

        assert outcome.source == "sample"
        assert "No tracking numbers found in workbook" in outcome.warnings

    def test_broken_sheet_becomes_warning(self, tracking_service, monkeypatch):
        import parsers.tracking_sheet_parser as parser_module

        real_parse_sheet = parser_module.parse_sheet

        def parse_sheet(sheet_name, rows):
            if sheet_name == "坏表":
                raise SheetParseError(sheet_name, "unreadable")
            return real_parse_sheet(sheet_name, rows)

        monkeypatch.setattr(parser_module, "parse_sheet", parse_sheet)
        content = build_workbook({
            "坏表": [["快递单号"], ["YT000000000001"]],
            "好表": [["快递单号"], ["YT000000000002"]],
        })

        outcome = tracking_service.load_workbook(content)

        assert [r.tracking_number for r in outcome.records] == ["YT000000000002"]
        assert len(outcome.warnings) == 1
        assert "坏表" in outcome.warnings[0]

    def test_upload_resets_query(self, tracking_service):
        tracking_service.load_default()
        tracking_service.search("YT")

        tracking_service.load_workbook(tracking_workbook(("YT894185215852", "滞留仓库")))

        assert tracking_service.view.search_term == ""


# ===================
# EDITING
# ===================

class TestEditRecord:
    """Tests for manual edits."""

    def test_edit_persists_and_marks_local(self, tracking_service, memory_store):
        tracking_service.load_default()

        outcome = tracking_service.edit_record(
            "YT894185215852",
            TrackingRecordUpdate(status="已发出", phone="13800138000"),
        )

        assert outcome.persisted
        assert outcome.record.status == "已发出"
        assert outcome.record.phone == "13800138000"
        assert outcome.record.origin == RecordOrigin.LOCAL
        assert outcome.record.updated_at is not None

        stored = memory_store.get_by_key("YT894185215852")
        assert stored.status == "已发出"

        in_view = next(r for r in tracking_service.records() if r.tracking_number == "YT894185215852")
        assert in_view.status == "已发出"

    def test_unset_fields_are_kept(self, tracking_service):
        tracking_service.load_default()

        outcome = tracking_service.edit_record("YT894185215852", TrackingRecordUpdate(recipient="张三"))

        assert outcome.record.recipient == "张三"
        assert outcome.record.kind == "正常"
        assert outcome.record.status == "待处理"

    def test_update_schema_matches_editable_fields(self):
        assert set(TrackingRecordUpdate.model_fields) == set(EDITABLE_FIELDS)

    def test_edit_only_touches_editable_fields(self, tracking_service, monkeypatch):
        import services.tracking_service as tracking_module

        tracking_service.load_default()
        monkeypatch.setattr(tracking_module, "EDITABLE_FIELDS", ("status",))

        outcome = tracking_service.edit_record(
            "YT894185215852",
            TrackingRecordUpdate(status="已发出", recipient="张三"),
        )

        assert outcome.record.status == "已发出"
        assert outcome.record.recipient == ""

    def test_edit_survives_reupload(self, tracking_service):
        tracking_service.load_default()
        tracking_service.edit_record("YT894185215852", TrackingRecordUpdate(status="已发出"))

        outcome = tracking_service.load_workbook(tracking_workbook(("YT894185215852", "待处理")))

        assert outcome.records[0].status == "已发出"

    def test_unknown_tracking_number(self, tracking_service):
        tracking_service.load_default()

        with pytest.raises(TrackingRecordNotFoundError):
            tracking_service.edit_record("NOPE123456", TrackingRecordUpdate(status="已发出"))

    def test_store_write_failure_keeps_memory_copy(self, no_default_workbook):
        store = WriteFailingStore()
        service = TrackingService(store)
        service.open()
        service.load_default()

        outcome = service.edit_record("YT894185215852", TrackingRecordUpdate(status="已发出"))

        assert not outcome.persisted
        assert outcome.warnings
        assert outcome.record.status == "已发出"
        assert store.get_by_key("YT894185215852") is None


# ===================
# LIFECYCLE / CACHE
# ===================

class TestLifecycle:
    """Tests for open() and clear_store()."""

    def test_unavailable_store_switches_to_memory(self, mock_supabase, no_default_workbook):
        mock_supabase.fail_with(ConnectionError("network down"))
        service = TrackingService(SupabaseRecordStore(client=mock_supabase))

        service.open()
        outcome = service.load_workbook(tracking_workbook(("YT894185215852", "滞留仓库")))

        assert service.memory_only
        assert isinstance(service.store, InMemoryRecordStore)
        assert outcome.memory_only
        assert outcome.persisted_count == 1

    def test_clear_store_reloads_sample(self, tracking_service, memory_store):
        tracking_service.load_workbook(tracking_workbook(("YT894185215852", "滞留仓库")))
        assert memory_store.get_all()

        outcome = tracking_service.clear_store()

        assert memory_store.get_all() == []
        assert outcome.source == "sample"

    def test_clear_store_failure_propagates(self, tracking_service, memory_store):
        memory_store.close()

        with pytest.raises(StoreUnavailableError):
            tracking_service.clear_store()


# ===================
# QUERIES
# ===================

class TestQueries:
    """Tests for search, filter, stats and export through the service."""

    def test_search_and_filter_are_exclusive(self, tracking_service):
        tracking_service.load_default()

        by_company = tracking_service.filter(RecordFacets(company="圆通"))
        assert len(by_company) == 4

        found = tracking_service.search("yt894185")
        assert [r.tracking_number for r in found] == ["YT894185215852"]
        assert tracking_service.view.facets.active() == {}

        tracking_service.filter(RecordFacets(company="中通"))
        assert tracking_service.view.search_term == ""

    def test_stats(self, tracking_service):
        tracking_service.load_default()

        stats = tracking_service.stats()

        assert stats["total"] == 20
        assert stats["by_batch"] == {SAMPLE_BATCH: 20}
        assert stats["by_company"][""] == 4

    def test_export_uses_visible_records(self, tracking_service):
        from openpyxl import load_workbook

        tracking_service.load_default()
        tracking_service.filter(RecordFacets(company="圆通"))

        wb = load_workbook(tracking_service.export_workbook())

        assert wb.sheetnames == [SAMPLE_BATCH]
        assert wb[SAMPLE_BATCH].max_row == 5
