"""
Preview (staging) store for catalog uploads.

One preview_products record per uploaded spreadsheet row, scoped by
supplier. Rows are listed, edited and given images here before the
commit service turns them into production products.

Every edit that can change a row's validity re-runs the row validator
before saving, so status always reflects the latest validation.
"""

from typing import Any, Optional
import structlog

from config import get_supabase_client, settings
from models.base import Pagination
from models.product import ProductImage
from models.preview import (
    StagedRow,
    StagedRowStatus,
    StagedRowCounts,
    StagedRowListResponse,
    UploadStatusResponse,
    EDITABLE_FIELDS,
    SORTABLE_FIELDS,
)
from parsers.excel_parser import RawRow
from services.validation_service import (
    RowValidationService,
    RowValidationResult,
    is_valid_uuid,
)
from services.image_service import ImageService, external_image, is_image_url
from utils.text_utils import cell_to_text
from exceptions import (
    DatabaseError,
    ValidationError,
    ImageStoreError,
    StagedRowNotFoundError,
    StagedImageNotFoundError,
    InvalidStagedUpdateError,
)

logger = structlog.get_logger(__name__)

MAX_PAGE_LIMIT = 100


def staged_payload(
    result: RowValidationResult,
    images: list[ProductImage],
    extra_errors: Optional[list[str]] = None
) -> dict:
    """
    Build the persisted fields of a staged row from a validation result.

    Args:
        result: Validator output (normalized values and errors)
        images: Images the row carries
        extra_errors: Errors found outside the validator (e.g. bad image URLs)

    Returns:
        Dict ready for insert/update into preview_products
    """
    errors = list(result.errors) + list(extra_errors or [])
    return {
        **result.normalized,
        "images": [img.model_dump() for img in images],
        "validation_errors": errors,
        "status": (StagedRowStatus.INVALID if errors else StagedRowStatus.VALID).value,
    }


def normalize_images(value: Any) -> list[ProductImage]:
    """
    Coerce an edited image list into ProductImage entries.

    Accepts image dicts or plain URLs. Exactly one image ends up main
    when the list is non-empty.

    Raises:
        ValidationError: If an entry is neither a valid image nor a URL
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("images must be a list", details={"field": "images"})

    images: list[ProductImage] = []
    for entry in value:
        if isinstance(entry, ProductImage):
            images.append(entry.model_copy())
        elif isinstance(entry, str) and is_image_url(entry):
            images.append(external_image(entry.strip()))
        elif isinstance(entry, dict):
            try:
                images.append(ProductImage(**entry))
            except Exception as e:
                raise ValidationError(
                    f"Invalid image entry: {e}",
                    details={"field": "images"}
                )
        else:
            raise ValidationError(
                f"'{entry}' is not a valid image URL",
                details={"field": "images"}
            )

    main_seen = False
    for img in images:
        if img.is_main and not main_seen:
            main_seen = True
        else:
            img.is_main = False
    if images and not main_seen:
        images[0].is_main = True

    return images


class PreviewService:
    """
    Staging store for uploaded catalog rows.

    Handles:
    - Full replace of a supplier's staged rows after an upload
    - Listing, filtering and counting staged rows
    - Field edits with re-validation
    - Image attach / set-main / remove
    - Paged reads and row transitions for the commit service
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "preview_products"
        self.validator = RowValidationService()
        self.images = ImageService()

    # ===================
    # BULK OPERATIONS
    # ===================

    def replace_all(self, supplier_id: str, rows: list[dict]) -> int:
        """
        Replace every staged row of a supplier.

        Deletes the previous set, then inserts the new rows in batches.

        Args:
            supplier_id: Supplier UUID
            rows: Staged row payloads (without supplier_id)

        Returns:
            Number of rows inserted
        """
        logger.info("replacing_staged_rows", supplier_id=supplier_id, count=len(rows))

        try:
            self.db.table(self.table).delete().eq("supplier_id", supplier_id).execute()
        except Exception as e:
            logger.error("clear_staged_rows_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("delete", str(e))

        batch_size = settings.staging_insert_batch_size
        inserted = 0

        for start in range(0, len(rows), batch_size):
            batch = [
                {**row, "supplier_id": supplier_id}
                for row in rows[start:start + batch_size]
            ]
            try:
                self.db.table(self.table).insert(batch).execute()
            except Exception as e:
                logger.error(
                    "insert_staged_batch_failed",
                    supplier_id=supplier_id,
                    batch_start=start,
                    error=str(e)
                )
                raise DatabaseError("insert", str(e))
            inserted += len(batch)

        logger.info("staged_rows_replaced", supplier_id=supplier_id, inserted=inserted)
        return inserted

    def clear(self, supplier_id: str) -> int:
        """
        Delete all staged rows of a supplier.

        Returns:
            Number of rows deleted
        """
        try:
            result = (
                self.db.table(self.table)
                .delete()
                .eq("supplier_id", supplier_id)
                .execute()
            )
        except Exception as e:
            logger.error("clear_staged_rows_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("delete", str(e))

        deleted = len(result.data or [])
        logger.info("staged_rows_cleared", supplier_id=supplier_id, deleted=deleted)
        return deleted

    # ===================
    # READ OPERATIONS
    # ===================

    def list_rows(
        self,
        supplier_id: str,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
        sort_by: str = "excel_row_index",
        sort_order: str = "asc"
    ) -> StagedRowListResponse:
        """
        Get a page of staged rows with status counts.

        Args:
            supplier_id: Supplier UUID
            status: Optional status filter (ignored if not a known status)
            page: Page number (1-indexed)
            limit: Rows per page, clamped into [1, 100]
            sort_by: Sort field; unknown fields fall back to excel_row_index
            sort_order: "asc" or "desc"

        Returns:
            StagedRowListResponse
        """
        page = max(page, 1)
        limit = max(1, min(limit, MAX_PAGE_LIMIT))
        if sort_by not in SORTABLE_FIELDS:
            sort_by = "excel_row_index"
        desc = str(sort_order).lower() == "desc"
        if status not in [s.value for s in StagedRowStatus]:
            status = None

        offset = (page - 1) * limit

        try:
            query = (
                self.db.table(self.table)
                .select("*", count="exact")
                .eq("supplier_id", supplier_id)
            )
            if status:
                query = query.eq("status", status)

            query = query.order(sort_by, desc=desc)
            if sort_by != "excel_row_index":
                query = query.order("excel_row_index")

            result = query.range(offset, offset + limit - 1).execute()

        except Exception as e:
            logger.error("list_staged_rows_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

        total = result.count or 0

        return StagedRowListResponse(
            preview_products=[StagedRow(**row) for row in result.data],
            counts=self.count_by_status(supplier_id),
            pagination=Pagination.create(total=total, page=page, limit=limit)
        )

    def count_by_status(self, supplier_id: str) -> StagedRowCounts:
        """Count a supplier's staged rows per status."""
        counts = StagedRowCounts()

        try:
            for status in StagedRowStatus:
                result = (
                    self.db.table(self.table)
                    .select("id", count="exact")
                    .eq("supplier_id", supplier_id)
                    .eq("status", status.value)
                    .limit(1)
                    .execute()
                )
                setattr(counts, status.value, result.count or 0)
        except Exception as e:
            logger.error("count_staged_rows_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

        counts.total = counts.valid + counts.invalid + counts.pending + counts.failed
        return counts

    def status_summary(self, supplier_id: str) -> UploadStatusResponse:
        """
        Counts by status plus the time of the latest upload.
        """
        counts = self.count_by_status(supplier_id)

        try:
            result = (
                self.db.table(self.table)
                .select("created_at")
                .eq("supplier_id", supplier_id)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("staged_status_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

        last_upload = result.data[0].get("created_at") if result.data else None

        return UploadStatusResponse(
            stats=counts,
            has_data=counts.total > 0,
            last_upload=str(last_upload) if last_upload else None
        )

    def get_row(self, supplier_id: str, row_id: str) -> StagedRow:
        """
        Get one staged row of a supplier.

        Raises:
            StagedRowNotFoundError: If the row doesn't exist for this supplier
        """
        if not is_valid_uuid(row_id):
            raise StagedRowNotFoundError(row_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", row_id)
                .eq("supplier_id", supplier_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_staged_row_failed", row_id=row_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise StagedRowNotFoundError(row_id)

        return StagedRow(**result.data[0])

    def fetch_page(self, supplier_id: str, after_index: int, limit: int) -> list[StagedRow]:
        """
        Next page of staged rows by source row index.

        Keyset paging: rows with excel_row_index greater than after_index,
        in index order. Stable while earlier rows are being deleted.
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("supplier_id", supplier_id)
                .gt("excel_row_index", after_index)
                .order("excel_row_index")
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(
                "fetch_staged_page_failed",
                supplier_id=supplier_id,
                after_index=after_index,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        return [StagedRow(**row) for row in result.data]

    # ===================
    # EDIT OPERATIONS
    # ===================

    def update_row(self, supplier_id: str, row_id: str, fields: dict) -> StagedRow:
        """
        Apply an operator edit and re-validate the row.

        Editing only one side of the category reference clears the other
        so it is resolved again.

        Raises:
            InvalidStagedUpdateError: If a field outside the allow-list is given
            StagedRowNotFoundError: If the row doesn't exist
        """
        rejected = [key for key in fields if key not in EDITABLE_FIELDS]
        if rejected:
            raise InvalidStagedUpdateError(rejected, EDITABLE_FIELDS)

        row = self.get_row(supplier_id, row_id)

        changes = dict(fields)
        if "category_id" in changes and "category_name" not in changes:
            changes["category_name"] = None
        elif "category_name" in changes and "category_id" not in changes:
            changes["category_id"] = None

        images = row.images
        if "images" in changes:
            images = normalize_images(changes.pop("images"))

        values = row.model_dump()
        values.update(changes)

        logger.info(
            "updating_staged_row",
            supplier_id=supplier_id,
            row_id=row_id,
            fields=sorted(fields)
        )

        return self._revalidate_and_save(supplier_id, row, values, images)

    def attach_image(
        self,
        supplier_id: str,
        row_id: str,
        content: bytes,
        filename: str,
        content_type: str
    ) -> tuple[StagedRow, ProductImage]:
        """
        Upload one image and put it at the front of the row's images.

        Raises:
            ImageStoreError: If the upload fails
        """
        row, uploaded = self._attach(
            supplier_id, row_id, [(content, filename, content_type)], skip_failures=False
        )
        return row, uploaded[0]

    def attach_images(
        self,
        supplier_id: str,
        row_id: str,
        files: list[tuple[bytes, str, str]]
    ) -> tuple[StagedRow, list[ProductImage]]:
        """
        Upload several images; individual upload failures are skipped.

        Args:
            files: (content, filename, content_type) per image

        Raises:
            ImageStoreError: If no image could be uploaded
        """
        return self._attach(supplier_id, row_id, files, skip_failures=True)

    def set_main_image(self, supplier_id: str, row_id: str, image_ref: str) -> StagedRow:
        """
        Make one image the main image.

        Args:
            image_ref: Image id or external reference

        Raises:
            StagedImageNotFoundError: If the row has no such image
        """
        row = self.get_row(supplier_id, row_id)
        target = self._find_image(row, image_ref)

        images = [
            img.model_copy(update={"is_main": img.id == target.id})
            for img in row.images
        ]

        logger.info("setting_main_image", row_id=row_id, image_id=target.id)
        return self._save(supplier_id, row_id, {"images": [img.model_dump() for img in images]})

    def remove_image(
        self,
        supplier_id: str,
        row_id: str,
        image_ref: str
    ) -> tuple[StagedRow, ProductImage]:
        """
        Remove one image from a row.

        The image store delete is best effort. If the main image is
        removed, the new first image becomes main.

        Raises:
            StagedImageNotFoundError: If the row has no such image
        """
        row = self.get_row(supplier_id, row_id)
        target = self._find_image(row, image_ref)

        self.images.delete_quietly([target.external_ref])

        remaining = [img.model_copy() for img in row.images if img.id != target.id]
        if target.is_main and remaining:
            remaining[0].is_main = True

        logger.info("removing_image", row_id=row_id, image_id=target.id)
        saved = self._revalidate_and_save(supplier_id, row, row.model_dump(), remaining)
        return saved, target

    # ===================
    # COMMIT TRANSITIONS
    # ===================

    def delete_row(self, supplier_id: str, row_id: str) -> None:
        """Delete one staged row after it was committed."""
        try:
            (
                self.db.table(self.table)
                .delete()
                .eq("id", row_id)
                .eq("supplier_id", supplier_id)
                .execute()
            )
        except Exception as e:
            logger.error("delete_staged_row_failed", row_id=row_id, error=str(e))
            raise DatabaseError("delete", str(e))

    def mark_failed(self, supplier_id: str, row: StagedRow, message: str) -> StagedRow:
        """Keep a row staged with status=failed and the commit error appended."""
        return self._save(
            supplier_id,
            row.id,
            {
                "status": StagedRowStatus.FAILED.value,
                "validation_errors": list(row.validation_errors) + [message],
            }
        )

    # ===================
    # HELPER METHODS
    # ===================

    def _attach(
        self,
        supplier_id: str,
        row_id: str,
        files: list[tuple[bytes, str, str]],
        skip_failures: bool
    ) -> tuple[StagedRow, list[ProductImage]]:
        row = self.get_row(supplier_id, row_id)

        uploaded: list[ProductImage] = []
        for content, filename, content_type in files:
            try:
                uploaded.append(self.images.upload(content, filename, content_type))
            except ImageStoreError as e:
                if not skip_failures:
                    raise
                logger.warning("image_upload_skipped", row_id=row_id, filename=filename, error=e.message)

        if not uploaded:
            raise ImageStoreError("Failed to upload any images", details={"row_id": row_id})

        if not row.images:
            uploaded[0].is_main = True

        images = uploaded + [img.model_copy() for img in row.images]

        try:
            saved = self._revalidate_and_save(supplier_id, row, row.model_dump(), images)
        except Exception:
            self.images.delete_quietly([img.external_ref for img in uploaded])
            raise

        logger.info("images_attached", row_id=row_id, count=len(uploaded))
        return saved, uploaded

    def validate_row(self, supplier_id: str, row: StagedRow) -> RowValidationResult:
        """
        Run a staged row through validation again without saving it.

        Raises:
            DatabaseError: If a category or product lookup fails
        """
        return self._validate(supplier_id, row, row.model_dump(), row.images)

    def _revalidate_and_save(
        self,
        supplier_id: str,
        row: StagedRow,
        values: dict,
        images: list[ProductImage]
    ) -> StagedRow:
        result = self._validate(supplier_id, row, values, images)
        return self._save(supplier_id, row.id, staged_payload(result, images))

    def _validate(
        self,
        supplier_id: str,
        row: StagedRow,
        values: dict,
        images: list[ProductImage]
    ) -> RowValidationResult:
        raw = RawRow(
            row_index=row.excel_row_index,
            identifier=cell_to_text(values.get("original_product_id")),
            name=cell_to_text(values.get("name")),
            description=cell_to_text(values.get("description")),
            price=values.get("price"),
            discounted_price=values.get("discounted_price"),
            gst=values.get("gst"),
            stock_quantity=values.get("stock_quantity"),
            unit=cell_to_text(values.get("unit")),
            category_id=cell_to_text(values.get("category_id")),
            category_name=cell_to_text(values.get("category_name")),
            images=[img.url for img in images],
        )
        return self.validator.validate(raw, supplier_id)

    def _save(self, supplier_id: str, row_id: str, payload: dict) -> StagedRow:
        try:
            result = (
                self.db.table(self.table)
                .update(payload)
                .eq("id", row_id)
                .eq("supplier_id", supplier_id)
                .execute()
            )
        except Exception as e:
            logger.error("save_staged_row_failed", row_id=row_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise StagedRowNotFoundError(row_id)

        return StagedRow(**result.data[0])

    @staticmethod
    def _find_image(row: StagedRow, image_ref: str) -> ProductImage:
        for img in row.images:
            if img.id == image_ref or (img.external_ref and img.external_ref == image_ref):
                return img
        raise StagedImageNotFoundError(image_ref)


# Singleton instance for convenience
_preview_service: Optional[PreviewService] = None


def get_preview_service() -> PreviewService:
    """Get or create PreviewService instance."""
    global _preview_service
    if _preview_service is None:
        _preview_service = PreviewService()
    return _preview_service
