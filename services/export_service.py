"""
Export service: write tracking records to an Excel workbook.

One sheet per batch, with a fixed column layout that round-trips through
the sheet parser (every header matches its field's keyword).
"""

from datetime import datetime
from io import BytesIO
from typing import Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font, Border, Side
from openpyxl.utils import get_column_letter
import structlog

from models.tracking_record import TrackingRecord

logger = structlog.get_logger(__name__)

# (header, record field, column width); "序号" is the 1-based row number
EXPORT_COLUMNS = [
    ("序号", None, 8),
    ("快递批次", "batch", 15),
    ("快递单号", "tracking_number", 20),
    ("快递公司", "company", 12),
    ("类型", "kind", 10),
    ("状态", "status", 12),
    ("到仓时间", "arrived_at", 15),
    ("发出时间", "dispatched_at", 15),
    ("收件人", "recipient", 12),
    ("电话号码", "phone", 15),
    ("家庭住址", "address", 30),
]

UNGROUPED_BATCH = "未分组"

# Excel rejects longer sheet names
MAX_SHEET_NAME_LENGTH = 31

_INVALID_SHEET_CHARS = str.maketrans({c: "_" for c in "[]:*?/\\"})


def record_to_export_row(record: TrackingRecord, sequence: int) -> dict:
    """
    Serialize a record into the export row shape.

    Args:
        record: Tracking record
        sequence: 1-based position within its sheet

    Returns:
        Dict keyed by export header, in column order
    """
    return {
        header: sequence if name is None else (getattr(record, name) or "")
        for header, name, _ in EXPORT_COLUMNS
    }


def group_by_batch(records: Sequence[TrackingRecord]) -> dict[str, list[TrackingRecord]]:
    """Group records by batch, keeping first-seen batch order."""
    groups: dict[str, list[TrackingRecord]] = {}
    for record in records:
        groups.setdefault(record.batch or UNGROUPED_BATCH, []).append(record)
    return groups


def export_sheet_name(batch: str, taken: set[str]) -> str:
    """
    Excel-safe, unique sheet name for a batch.

    Strips characters Excel forbids and cuts to 31 characters; a name
    already used gets a numeric suffix.
    """
    base = batch.translate(_INVALID_SHEET_CHARS)[:MAX_SHEET_NAME_LENGTH] or UNGROUPED_BATCH
    name = base
    counter = 2
    while name in taken:
        suffix = f"({counter})"
        name = base[:MAX_SHEET_NAME_LENGTH - len(suffix)] + suffix
        counter += 1
    taken.add(name)
    return name


def export_filename(now: Optional[datetime] = None) -> str:
    """Download filename stamped with the export time."""
    now = now or datetime.now()
    return f"快递数据_按批次分表_{now:%Y%m%d_%H%M%S}.xlsx"


class ExportService:
    """Service for generating tracking record export files."""

    def generate_batch_workbook(self, records: Sequence[TrackingRecord]) -> BytesIO:
        """
        Generate an Excel workbook with one sheet per batch.

        Args:
            records: Records to export, in display order

        Returns:
            BytesIO containing the Excel file
        """
        groups = group_by_batch(records)

        logger.info(
            "generating_batch_workbook",
            record_count=len(records),
            batch_count=len(groups),
        )

        wb = Workbook()
        # Removed below unless the export is empty (a workbook needs one sheet)
        default_sheet = wb.active

        bold_font = Font(bold=True)
        thin_border = Border(bottom=Side(style="thin", color="000000"))

        taken: set[str] = set()
        for batch, batch_records in groups.items():
            ws = wb.create_sheet(title=export_sheet_name(batch, taken))

            for col, (header, _, width) in enumerate(EXPORT_COLUMNS, start=1):
                cell = ws.cell(row=1, column=col, value=header)
                cell.font = bold_font
                cell.border = thin_border
                ws.column_dimensions[get_column_letter(col)].width = width

            for sequence, record in enumerate(batch_records, start=1):
                row = record_to_export_row(record, sequence)
                for col, (header, _, _) in enumerate(EXPORT_COLUMNS, start=1):
                    ws.cell(row=sequence + 1, column=col, value=row[header])

        if groups:
            wb.remove(default_sheet)
        else:
            default_sheet.title = UNGROUPED_BATCH
            for col, (header, _, _) in enumerate(EXPORT_COLUMNS, start=1):
                default_sheet.cell(row=1, column=col, value=header).font = bold_font

        logger.info(
            "batch_workbook_generated",
            sheets=wb.sheetnames,
            record_count=len(records),
        )

        output = BytesIO()
        wb.save(output)
        output.seek(0)

        return output


# Singleton instance
_export_service: Optional[ExportService] = None


def get_export_service() -> ExportService:
    """Get or create ExportService instance."""
    global _export_service
    if _export_service is None:
        _export_service = ExportService()
    return _export_service
