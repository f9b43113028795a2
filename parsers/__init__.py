"""
Spreadsheet parsers module.
"""

from parsers.excel_parser import (
    parse_catalog_excel,
    resolve_columns,
    RawRow,
    SpreadsheetParseResult,
    COLUMN_SYNONYMS,
    CANONICAL_HEADERS,
)

__all__ = [
    "parse_catalog_excel",
    "resolve_columns",
    "RawRow",
    "SpreadsheetParseResult",
    "COLUMN_SYNONYMS",
    "CANONICAL_HEADERS",
]
