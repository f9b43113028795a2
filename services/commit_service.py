"""
Commit service: moves staged rows into the production catalog.

Rows are read in pages ordered by source row index and handled one at a
time. A row that fails to commit stays staged with status=failed; a
datastore failure while paging stops the run. Nothing is rolled back.
"""

import time
from typing import Optional
import structlog
from pydantic import ValidationError as PydanticValidationError

from config import settings
from models.product import ProductCreate, ProductUpdate
from models.preview import StagedRow, StagedRowStatus, CommitResult
from services.preview_service import PreviewService
from services.product_service import ProductService
from exceptions import AppError, CommitRowError, StagedRowNotFoundError

logger = structlog.get_logger(__name__)


def clamp_batch_size(batch_size: Optional[int]) -> int:
    """Clamp a requested page size into the configured range."""
    if batch_size is None:
        batch_size = settings.commit_batch_size_default
    return max(settings.commit_batch_size_min, min(batch_size, settings.commit_batch_size_max))


def _error_message(e: Exception) -> str:
    """Readable message for a row failure."""
    if isinstance(e, PydanticValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
    if isinstance(e, AppError):
        return e.message
    return str(e)


class CommitService:
    """
    Batch committer for staged catalog rows.
    """

    def __init__(self):
        self.preview = PreviewService()
        self.products = ProductService()

    def commit(
        self,
        supplier_id: str,
        include_invalid: bool = False,
        batch_size: Optional[int] = None
    ) -> CommitResult:
        """
        Commit a supplier's staged rows.

        Args:
            supplier_id: Supplier UUID
            include_invalid: Also commit rows with status=invalid
            batch_size: Rows per page, clamped into [10, 200]

        Returns:
            CommitResult. created + updated + skipped + failed equals the
            number of staged rows the run reached.
        """
        batch_size = clamp_batch_size(batch_size)
        result = CommitResult()
        last_index = 0
        page_number = 0

        logger.info(
            "commit_started",
            supplier_id=supplier_id,
            include_invalid=include_invalid,
            batch_size=batch_size
        )

        while True:
            try:
                page = self.preview.fetch_page(supplier_id, last_index, batch_size)
                if not page:
                    break

                page_number += 1
                for row in page:
                    last_index = row.excel_row_index
                    self._commit_row(supplier_id, row, include_invalid, result)

            except Exception as e:
                message = _error_message(e)
                logger.error(
                    "commit_aborted",
                    supplier_id=supplier_id,
                    page=page_number,
                    last_row_index=last_index,
                    error=message,
                    error_type=type(e).__name__
                )
                result.aborted = True
                result.errors.append(f"Batch processing error: {message}")
                break

            # Let the connection pool breathe between pages
            time.sleep(settings.commit_page_pause_seconds)

        logger.info(
            "commit_finished",
            supplier_id=supplier_id,
            pages=page_number,
            created=result.created,
            updated=result.updated,
            skipped=result.skipped,
            failed=result.failed,
            aborted=result.aborted
        )

        return result

    def _commit_row(
        self,
        supplier_id: str,
        row: StagedRow,
        include_invalid: bool,
        result: CommitResult
    ) -> None:
        """
        Commit one row and record the outcome.

        Per-row failures are absorbed here. DatabaseError from validation
        lookups or staging transitions propagates and aborts the run.
        """
        if row.status == StagedRowStatus.PENDING or (
            row.status == StagedRowStatus.INVALID and not include_invalid
        ):
            result.skipped += 1
            return

        if row.status == StagedRowStatus.FAILED and not include_invalid:
            # A failed row may have been forced through while invalid
            check = self.preview.validate_row(supplier_id, row)
            if not check.is_valid:
                logger.info(
                    "failed_row_still_invalid",
                    supplier_id=supplier_id,
                    row_id=row.id,
                    errors=check.errors
                )
                result.skipped += 1
                return
            row = row.model_copy(update=check.normalized)

        is_update = bool(row.is_update and row.original_product_id)

        try:
            if settings.require_product_image and not row.images:
                raise CommitRowError(row.excel_row_index, row.name, "At least one product image is required")

            if is_update:
                self.products.update_by_id(
                    row.original_product_id, self._build_update(row), supplier_id=supplier_id
                )
            else:
                self.products.create(self._build_create(supplier_id, row))

        except Exception as e:
            message = _error_message(e)
            error = CommitRowError(row.excel_row_index, row.name, message)

            logger.warning(
                "commit_row_failed",
                supplier_id=supplier_id,
                row_id=row.id,
                row_index=row.excel_row_index,
                error=message
            )

            result.failed += 1
            result.errors.append(error.formatted())
            try:
                self.preview.mark_failed(supplier_id, row, message)
            except StagedRowNotFoundError:
                logger.warning("failed_row_vanished", supplier_id=supplier_id, row_id=row.id)
            return

        if is_update:
            result.updated += 1
        else:
            result.created += 1

        self.preview.delete_row(supplier_id, row.id)

    @staticmethod
    def _build_create(supplier_id: str, row: StagedRow) -> ProductCreate:
        return ProductCreate(
            supplier_id=supplier_id,
            category_id=row.category_id,
            name=row.name,
            description=row.description or "",
            price=row.price,
            discounted_price=row.discounted_price,
            gst=row.gst if row.gst is not None else 0,
            stock_quantity=row.stock_quantity,
            unit=row.unit,
            images=row.images,
        )

    @staticmethod
    def _build_update(row: StagedRow) -> ProductUpdate:
        data = {
            "category_id": row.category_id,
            "name": row.name,
            "description": row.description or "",
            "price": row.price,
            "gst": row.gst if row.gst is not None else 0,
            "stock_quantity": row.stock_quantity,
            "unit": row.unit,
        }
        data = {key: value for key, value in data.items() if value is not None}
        data["discounted_price"] = row.discounted_price
        # An update without images keeps the product's current ones
        if row.images:
            data["images"] = row.images
        return ProductUpdate(**data)


# Singleton instance for convenience
_commit_service: Optional[CommitService] = None


def get_commit_service() -> CommitService:
    """Get or create CommitService instance."""
    global _commit_service
    if _commit_service is None:
        _commit_service = CommitService()
    return _commit_service
