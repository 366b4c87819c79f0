"""
Workbook parser for parcel tracking sheets.

Tracking workbooks are loosely structured: every sheet is one batch, the
first row is a header in whatever wording the sender used, and some sheets
have no recognizable header at all (just columns of tracking numbers).

Header cells are matched by keyword; when no tracking-number column can be
found, the first letters-and-digits token in each row is taken instead.
"""

from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Optional, Sequence, Union
import structlog

import pandas as pd

from exceptions import WorkbookReadError, SheetParseError
from models.tracking_record import TrackingRecord, RecordOrigin
from utils.carrier_utils import classify_carrier
from utils.text_utils import cell_to_text, is_blank, is_tracking_token

logger = structlog.get_logger(__name__)


# ===================
# CONSTANTS
# ===================

# Header keywords per record field (a header matches if it contains any)
COLUMN_KEYWORDS: dict[str, list[str]] = {
    "company": ["来源公司", "公司"],
    "tracking_number": ["快递单号", "单号"],
    "kind": ["类型"],
    "status": ["状态"],
    "arrived_at": ["到仓时间", "到仓"],
    "dispatched_at": ["发出时间", "发出"],
    "recipient": ["收件人", "姓名"],
    "phone": ["电话号码", "手机号", "联系电话", "电话"],
    "address": ["家庭住址", "地址", "收货地址"],
}

# Column recorded as provenance when the sheet has no tracking-number header
FALLBACK_SOURCE_COLUMN = 1


# ===================
# DATA CLASSES
# ===================

@dataclass
class SheetError:
    """A sheet that was skipped because it could not be read or parsed."""
    sheet: str
    error: str


@dataclass
class WorkbookParseResult:
    """Result of parsing every sheet in a workbook."""
    records: list[TrackingRecord] = field(default_factory=list)
    errors: list[SheetError] = field(default_factory=list)
    sheet_names: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if every sheet was parsed."""
        return len(self.errors) == 0

    @property
    def has_data(self) -> bool:
        """True if any record was found."""
        return len(self.records) > 0

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "record_count": len(self.records),
            "sheets": self.sheet_names,
            "errors": [
                {"sheet": e.sheet, "error": e.error}
                for e in self.errors
            ],
        }


# ===================
# WORKBOOK PARSING
# ===================

WORKBOOK_ENGINES = ("openpyxl", "xlrd")


def _open_workbook(file: Union[str, Path, BytesIO]) -> pd.ExcelFile:
    """
    Open a workbook with the first engine that can read it.

    openpyxl reads .xlsx; xlrd covers legacy .xls files.

    Raises:
        WorkbookReadError: If no engine can read the file
    """
    errors = {}
    for engine in WORKBOOK_ENGINES:
        try:
            excel = pd.ExcelFile(file, engine=engine)
            break
        except Exception as e:
            errors[engine] = str(e)
            if hasattr(file, "seek"):
                file.seek(0)
            continue
    else:
        logger.error("workbook_read_failed", errors=errors)
        raise WorkbookReadError(
            message="Failed to read workbook",
            details={"original_error": errors}
        )

    logger.debug("workbook_opened", engine=engine)
    return excel


def parse_workbook(file: Union[str, Path, BytesIO, bytes]) -> WorkbookParseResult:
    """
    Parse every sheet of a tracking workbook.

    A sheet that cannot be read or parsed is recorded in `errors` and
    skipped; the remaining sheets are still parsed.

    Args:
        file: File path (str/Path), file-like object (BytesIO) or raw bytes

    Returns:
        WorkbookParseResult with records in sheet order, then row order

    Raises:
        WorkbookReadError: If the file is not a readable workbook
    """
    logger.info("parsing_workbook", file_type=type(file).__name__)

    if isinstance(file, bytes):
        file = BytesIO(file)

    excel = _open_workbook(file)
    result = WorkbookParseResult(sheet_names=list(excel.sheet_names))

    for sheet_name in excel.sheet_names:
        try:
            df = excel.parse(sheet_name, header=None, dtype=object)
            rows = df.values.tolist()
            result.records.extend(parse_sheet(str(sheet_name), rows))
        except SheetParseError as e:
            logger.warning("sheet_skipped", sheet=sheet_name, error=e.message)
            result.errors.append(SheetError(sheet=str(sheet_name), error=e.message))
        except Exception as e:
            logger.warning("sheet_skipped", sheet=sheet_name, error=str(e))
            result.errors.append(SheetError(
                sheet=str(sheet_name),
                error=f"Failed to read sheet: {str(e)}"
            ))

    logger.info(
        "workbook_parsed",
        sheets=len(result.sheet_names),
        record_count=len(result.records),
        error_count=len(result.errors),
    )

    return result


# ===================
# SHEET PARSING
# ===================

def parse_sheet(sheet_name: str, rows: Sequence[Sequence[Any]]) -> list[TrackingRecord]:
    """
    Parse one sheet grid into candidate tracking records.

    Row 0 is the header. Every later row that yields a tracking number
    becomes one record (duplicates included); rows without one are skipped.

    Args:
        sheet_name: Sheet name, used as the records' batch
        rows: Row-major grid of raw cell values (ragged rows allowed)

    Returns:
        Records with origin IMPORTED, in row order

    Raises:
        SheetParseError: If the grid is not a sequence of rows
    """
    if rows is None or isinstance(rows, (str, bytes)):
        raise SheetParseError(sheet_name, "sheet is not a grid of rows")

    rows = list(rows)
    if len(rows) <= 1:
        logger.debug("sheet_empty", sheet=sheet_name, rows=len(rows))
        return []

    for index, row in enumerate(rows):
        if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
            raise SheetParseError(sheet_name, f"row {index} is not a list of cells")

    header = rows[0]
    columns = resolve_columns(header)
    tracking_column = columns["tracking_number"]

    source_column = tracking_column if tracking_column is not None else FALLBACK_SOURCE_COLUMN
    source_label = cell_to_text(_cell(header, source_column)) or f"列{source_column + 1}"

    records = []
    skipped = 0

    for row_index, row in enumerate(rows[1:], start=1):
        tracking_number = _extract_tracking_number(row, tracking_column)
        if not tracking_number:
            skipped += 1
            continue

        values = {
            name: cell_to_text(_cell(row, column)) if column is not None else ""
            for name, column in columns.items()
            if name != "tracking_number"
        }

        if not values["company"]:
            values["company"] = classify_carrier(tracking_number)

        records.append(TrackingRecord(
            tracking_number=tracking_number,
            batch=sheet_name,
            source_row=row_index,
            source_column=source_column,
            source_column_label=source_label,
            origin=RecordOrigin.IMPORTED,
            **values,
        ))

    logger.debug(
        "sheet_parsed",
        sheet=sheet_name,
        columns={k: v for k, v in columns.items() if v is not None},
        record_count=len(records),
        skipped_rows=skipped,
    )

    return records


def resolve_columns(header: Sequence[Any]) -> dict[str, Optional[int]]:
    """
    Find the column index of each record field in a header row.

    Each field takes the first header cell containing any of its keywords.

    Args:
        header: Header row cells

    Returns:
        Field name -> column index, or None when no header matches
    """
    labels = [cell_to_text(cell) for cell in header]

    columns: dict[str, Optional[int]] = {}
    for name, keywords in COLUMN_KEYWORDS.items():
        columns[name] = next(
            (
                index
                for index, label in enumerate(labels)
                if label and any(keyword in label for keyword in keywords)
            ),
            None,
        )
    return columns


# ===================
# HELPER FUNCTIONS
# ===================

def _cell(row: Sequence[Any], index: int) -> Any:
    """Cell at index, or None past the end of a ragged row."""
    if index < len(row):
        return row[index]
    return None


def _extract_tracking_number(row: Sequence[Any], tracking_column: Optional[int]) -> str:
    """
    Tracking number for a data row, or "" if the row has none.

    Uses the tracking-number column when it has a value, otherwise the first
    cell that looks like a bare tracking number.
    """
    if tracking_column is not None:
        value = _cell(row, tracking_column)
        if not is_blank(value):
            return cell_to_text(value)

    for value in row:
        text = cell_to_text(value)
        if is_tracking_token(text):
            return text

    return ""
