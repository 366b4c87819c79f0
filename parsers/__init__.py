"""
Workbook and sheet parsers module.
"""

from parsers.tracking_sheet_parser import (
    parse_workbook,
    parse_sheet,
    resolve_columns,
    WorkbookParseResult,
    SheetError,
)

__all__ = [
    "parse_workbook",
    "parse_sheet",
    "resolve_columns",
    "WorkbookParseResult",
    "SheetError",
]
