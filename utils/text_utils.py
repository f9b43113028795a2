"""
Text utilities for spreadsheet headers and cell values.
"""

import re
import unicodedata
from typing import Any, Optional

import pandas as pd


def normalize_header(header: Any) -> str:
    """
    Normalize a spreadsheet header for synonym lookup.

    Strips accents, lowercases and drops everything but letters and digits:
    - "Stock Quantity" → "stockquantity"
    - "stock_quantity" → "stockquantity"
    - " Catégorie-ID " → "categorieid"

    Args:
        header: Raw header cell value (may be None or a number)

    Returns:
        Normalized header, or "" for empty cells
    """
    if header is None or _is_missing(header):
        return ""

    text = str(header).strip().lower()

    # NFKD separates base chars from accents
    text = unicodedata.normalize("NFKD", text)
    text = "".join(c for c in text if not unicodedata.combining(c))

    return re.sub(r"[^a-z0-9]", "", text)


def clean_cell(value: Any) -> Any:
    """
    Clean one cell value.

    - NaN/None → None
    - Strings are stripped; whitespace-only strings → None
    - Numbers and other values pass through

    Args:
        value: Raw cell value from the spreadsheet

    Returns:
        Cleaned value or None
    """
    if value is None or _is_missing(value):
        return None

    if isinstance(value, str):
        value = value.strip()
        return value or None

    return value


def cell_to_text(value: Any) -> Optional[str]:
    """
    Render a cleaned cell as text.

    Whole floats lose their ".0" so numeric identifiers survive
    spreadsheet round trips.
    """
    value = clean_cell(value)
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def split_list(value: Any, separators: str = ",;\n") -> list[str]:
    """
    Split a delimited cell ("a.jpg, b.jpg") into its non-empty parts.
    """
    text = cell_to_text(value)
    if not text:
        return []

    pattern = "[" + re.escape(separators) + "]"
    return [part.strip() for part in re.split(pattern, text) if part.strip()]


def _is_missing(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        # Array-like values are never "missing"
        return False
