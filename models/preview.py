"""
Catalog upload schemas: staged rows, upload summaries and commit results.

A staged row ("preview product") is one spreadsheet line held for
review before it becomes a production product.
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum

from models.base import BaseSchema, TimestampMixin, Pagination
from models.product import ProductImage


class StagedRowStatus(str, Enum):
    """Lifecycle status of a staged row."""
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    FAILED = "failed"


class TemplateMode(str, Enum):
    """Template download mode."""
    NEW = "new"   # Header and instructions only
    OLD = "old"   # Pre-filled with the supplier's current catalog


# Fields an operator may edit on a staged row
EDITABLE_FIELDS = [
    "name",
    "description",
    "price",
    "gst",
    "stock_quantity",
    "unit",
    "category_id",
    "category_name",
    "images",
]

# Fields the staged list may be sorted by
SORTABLE_FIELDS = ["excel_row_index", "name", "price", "status", "created_at"]


class StagedRow(BaseSchema, TimestampMixin):
    """
    One staged spreadsheet row as stored in preview_products.

    Numeric fields stay optional so an invalid row can still be shown
    and edited with whatever the spreadsheet held.
    """

    id: str
    supplier_id: str
    excel_row_index: int
    name: str = ""
    description: str = ""
    price: Optional[float] = None
    discounted_price: Optional[float] = None
    gst: Optional[float] = 0
    stock_quantity: Optional[float] = None
    unit: Optional[str] = None
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    images: list[ProductImage] = Field(default_factory=list)
    has_custom_image: bool = False
    is_update: bool = False
    original_product_id: Optional[str] = None
    validation_errors: list[str] = Field(default_factory=list)
    status: StagedRowStatus = StagedRowStatus.PENDING

    @property
    def main_image(self) -> Optional[ProductImage]:
        return next((img for img in self.images if img.is_main), None)


class StagedRowCounts(BaseModel):
    """Staged row counts by status."""
    valid: int = 0
    invalid: int = 0
    pending: int = 0
    failed: int = 0
    total: int = 0


class StagedRowListResponse(BaseModel):
    """Page of staged rows with status counts."""
    preview_products: list[StagedRow]
    counts: StagedRowCounts
    pagination: Pagination


class UploadStatusResponse(BaseModel):
    """Staging summary for a supplier."""
    stats: StagedRowCounts
    has_data: bool
    last_upload: Optional[str] = None


class ParseSummary(BaseModel):
    """Outcome of parsing and staging one spreadsheet."""
    processed_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    skipped_rows: int = 0

    @property
    def has_invalid_rows(self) -> bool:
        return self.invalid_rows > 0


class UploadResponse(BaseModel):
    """Response body of the spreadsheet upload endpoint."""
    processed_rows: int
    valid_rows: int
    invalid_rows: int
    skipped_rows: int
    has_invalid_rows: bool
    message: str = "Spreadsheet processed successfully"

    @classmethod
    def from_summary(cls, summary: ParseSummary) -> "UploadResponse":
        return cls(
            processed_rows=summary.processed_rows,
            valid_rows=summary.valid_rows,
            invalid_rows=summary.invalid_rows,
            skipped_rows=summary.skipped_rows,
            has_invalid_rows=summary.has_invalid_rows,
        )


class StagedRowResponse(BaseModel):
    """Staged row after an edit."""
    preview_product: StagedRow
    message: str


class ClearResponse(BaseModel):
    """Result of clearing a supplier's staged rows."""
    deleted_count: int
    message: str = "Preview products cleared successfully"


class ImageListResponse(BaseModel):
    """Images attached to one staged row."""
    images: list[ProductImage]
    product_name: str
    total_images: int


class ImageChangeResponse(BaseModel):
    """Staged row after an image operation."""
    preview_product: StagedRow
    image: Optional[ProductImage] = None
    uploaded_images: list[ProductImage] = Field(default_factory=list)
    message: str


# ===================
# COMMIT
# ===================

class CommitRequest(BaseModel):
    """Body of the confirm-upload endpoint."""
    process_invalid: bool = False
    batch_size: Optional[int] = Field(
        None,
        description="Rows per page; clamped into [10, 200]"
    )


class CommitResult(BaseModel):
    """
    Outcome of one commit run.

    Conservation: created + updated + skipped + failed equals the number
    of staged rows the run considered.
    """
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
    aborted: bool = False

    @property
    def considered(self) -> int:
        return self.created + self.updated + self.skipped + self.failed

    @property
    def has_errors(self) -> bool:
        return self.failed > 0 or self.aborted


class CommitResponse(BaseModel):
    """Response body of the confirm-upload endpoint."""
    results: CommitResult
    failed_products: list[str]
    message: str

    @classmethod
    def from_result(cls, result: CommitResult) -> "CommitResponse":
        message = (
            "Products processed with some errors"
            if result.has_errors
            else "Products processed successfully"
        )
        return cls(results=result, failed_products=result.errors, message=message)
