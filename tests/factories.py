"""
Test data factories.

Uses factory pattern to generate consistent tracking records and
in-memory workbooks.
"""

from io import BytesIO
from typing import Any, Optional

from openpyxl import Workbook

from models.tracking_record import TrackingRecord, RecordOrigin


# Header row in the layout senders usually use
STANDARD_HEADER = ["快递单号", "快递公司", "类型", "状态", "到仓时间", "收件人", "电话号码", "家庭住址"]


class TrackingRecordFactory:
    """
    Factory for creating test TrackingRecord data.

    Usage:
        # Create with defaults
        record = TrackingRecordFactory.create()

        # Create with overrides
        record = TrackingRecordFactory.create(tracking_number="YT894185215852", status="已发出")

        # Create multiple
        records = TrackingRecordFactory.create_batch(5, batch="6月1日")
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        tracking_number: Optional[str] = None,
        company: str = "圆通",
        batch: str = "6月1日",
        kind: str = "正常",
        status: str = "待处理",
        origin: RecordOrigin = RecordOrigin.IMPORTED,
        source_row: Optional[int] = None,
        **overrides: Any
    ) -> TrackingRecord:
        """
        Create a single tracking record.

        Args:
            tracking_number: Auto-generated YT number if not provided
            company: Carrier name
            batch: Sheet the record came from
            kind: Classification
            status: Workflow state
            origin: LOCAL or IMPORTED
            source_row: Row index (defaults to the counter)
            **overrides: Any other TrackingRecord field

        Returns:
            TrackingRecord
        """
        counter = cls._next_counter()

        return TrackingRecord(
            tracking_number=tracking_number or f"YT{894000000000 + counter}",
            company=company,
            batch=batch,
            kind=kind,
            status=status,
            origin=origin,
            source_row=source_row if source_row is not None else counter,
            source_column=0,
            source_column_label="快递单号",
            **overrides
        )

    @classmethod
    def create_batch(cls, count: int, **overrides) -> list:
        """
        Create multiple records.

        Args:
            count: Number of records to create
            **overrides: Fields to apply to all records

        Returns:
            List of TrackingRecord
        """
        return [cls.create(**overrides) for _ in range(count)]

    @classmethod
    def create_row(cls, **overrides) -> dict:
        """Record as a Supabase row dict."""
        return cls.create(**overrides).model_dump(mode="json")


def build_workbook(sheets: dict[str, list[list[Any]]]) -> bytes:
    """
    Build an .xlsx file in memory.

    Args:
        sheets: Sheet name -> rows (first row is the header)

    Returns:
        Workbook bytes
    """
    wb = Workbook()
    wb.remove(wb.active)

    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(row)

    output = BytesIO()
    wb.save(output)
    return output.getvalue()
