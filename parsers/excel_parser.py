"""
Spreadsheet parser for supplier catalog uploads.

Turns an uploaded .xlsx/.xls into ordered raw rows. Headers are matched
through a synonym table so "stock", "quantity" and "stockQuantity" all
land in the same field. Values are cleaned but not validated; that is
the row validator's job.
"""

from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Optional, Union
import structlog

import pandas as pd

from exceptions import FormatError
from utils.text_utils import normalize_header, clean_cell, cell_to_text, split_list

logger = structlog.get_logger(__name__)


# Canonical field -> accepted headers (already normalized)
COLUMN_SYNONYMS: dict[str, list[str]] = {
    "identifier": ["id", "productid", "identifier"],
    "name": ["name", "productname", "product", "itemname"],
    "description": ["description", "desc", "productdescription", "details"],
    "price": ["price", "sellingprice", "cost", "rate"],
    "discounted_price": ["discountedprice", "discountprice", "offerprice", "saleprice"],
    "gst": ["gst", "gstrate", "tax", "taxpercentage", "vat"],
    "stock_quantity": ["stockquantity", "stock", "quantity", "availablestock", "qty"],
    "unit": ["unit", "measurementunit", "uom", "measurement"],
    "category_id": ["categoryid"],
    "category_name": ["categoryname", "category", "productcategory"],
    "images": ["images", "image", "imageurls", "imageurl", "photos"],
}

# Header text written by the template for each canonical field
CANONICAL_HEADERS: dict[str, str] = {
    "identifier": "_id",
    "name": "name",
    "description": "description",
    "price": "price",
    "gst": "gst",
    "stock_quantity": "stockQuantity",
    "unit": "unit",
    "category_id": "categoryId",
    "category_name": "categoryName",
    "images": "images",
}


@dataclass
class RawRow:
    """
    One spreadsheet line as read, before validation.

    row_index is 1-based and excludes the header row.
    """
    row_index: int
    identifier: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: Any = None
    discounted_price: Any = None
    gst: Any = None
    stock_quantity: Any = None
    unit: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    images: list[str] = field(default_factory=list)

    @property
    def is_data_row(self) -> bool:
        """
        False for blank and instruction rows.

        A row is non-data when it has no price and no category reference
        and either no name or a name that is instruction text.
        """
        if self.price is not None or self.category_id or self.category_name:
            return True
        if not self.name:
            return False
        return "instruction" not in self.name.lower()


@dataclass
class SpreadsheetParseResult:
    """Result of parsing an uploaded spreadsheet."""
    rows: list[RawRow] = field(default_factory=list)
    skipped_rows: int = 0
    column_map: dict[str, int] = field(default_factory=dict)
    unmatched_headers: list[str] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        """True if any data row was parsed."""
        return len(self.rows) > 0


def parse_catalog_excel(file: Union[bytes, BytesIO]) -> SpreadsheetParseResult:
    """
    Parse a supplier catalog spreadsheet.

    Only the first worksheet is read. Its first row is the header.

    Args:
        file: Raw bytes or file-like object

    Returns:
        SpreadsheetParseResult with data rows in sheet order and the
        number of skipped (blank/instruction) rows

    Raises:
        FormatError: If the file cannot be read or has no rows below the header
    """
    logger.info("parsing_catalog_excel", file_type=type(file).__name__)

    df = _load_sheet(file)

    if df.empty:
        raise FormatError("Spreadsheet must contain at least one worksheet with rows")

    headers = list(df.iloc[0])
    column_map, unmatched = resolve_columns(headers)
    data = df.iloc[1:]

    if data.empty:
        raise FormatError(
            "Spreadsheet contains no product rows",
            details={"columns": [cell_to_text(h) for h in headers if cell_to_text(h)]}
        )

    result = SpreadsheetParseResult(column_map=column_map, unmatched_headers=unmatched)

    for offset, values in enumerate(data.itertuples(index=False, name=None), start=1):
        raw = _build_raw_row(offset, values, column_map)

        if not raw.is_data_row:
            logger.debug("skipping_non_data_row", row_index=offset)
            result.skipped_rows += 1
            continue

        result.rows.append(raw)

    logger.info(
        "catalog_excel_parsed",
        data_rows=len(result.rows),
        skipped_rows=result.skipped_rows,
        matched_columns=sorted(column_map),
        unmatched_headers=unmatched,
    )

    return result


def resolve_columns(headers: list[Any]) -> tuple[dict[str, int], list[str]]:
    """
    Map canonical fields to column positions.

    The first header matching a field wins.

    Args:
        headers: Header row cell values

    Returns:
        Tuple of ({canonical_field: column_index}, unmatched header texts)
    """
    lookup = {
        synonym: canonical
        for canonical, synonyms in COLUMN_SYNONYMS.items()
        for synonym in synonyms
    }

    column_map: dict[str, int] = {}
    unmatched: list[str] = []

    for idx, header in enumerate(headers):
        key = normalize_header(header)
        if not key:
            continue
        canonical = lookup.get(key)
        if canonical is None:
            unmatched.append(str(header).strip())
        elif canonical not in column_map:
            column_map[canonical] = idx

    return column_map, unmatched


# ===================
# HELPER FUNCTIONS
# ===================

def _load_sheet(file: Union[bytes, BytesIO]) -> pd.DataFrame:
    """Load the first worksheet without a header, trying .xlsx then .xls."""
    if isinstance(file, (bytes, bytearray)):
        file = BytesIO(file)

    last_error: Optional[Exception] = None
    for engine in ["openpyxl", "xlrd"]:
        try:
            file.seek(0)
            return pd.read_excel(file, sheet_name=0, header=None, dtype=object, engine=engine)
        except Exception as e:
            last_error = e
            continue

    logger.error("catalog_excel_read_failed", error=str(last_error))
    raise FormatError(
        "Failed to read spreadsheet; upload an .xlsx or .xls file",
        details={"original_error": str(last_error)}
    )


def _build_raw_row(row_index: int, values: tuple, column_map: dict[str, int]) -> RawRow:
    """Pick each mapped column's cell out of a sheet row."""

    def cell(name: str) -> Any:
        idx = column_map.get(name)
        if idx is None or idx >= len(values):
            return None
        return clean_cell(values[idx])

    return RawRow(
        row_index=row_index,
        identifier=cell_to_text(cell("identifier")),
        name=cell_to_text(cell("name")),
        description=cell_to_text(cell("description")),
        price=cell("price"),
        discounted_price=cell("discounted_price"),
        gst=cell("gst"),
        stock_quantity=cell("stock_quantity"),
        unit=cell_to_text(cell("unit")),
        category_id=cell_to_text(cell("category_id")),
        category_name=cell_to_text(cell("category_name")),
        images=split_list(cell("images")),
    )
