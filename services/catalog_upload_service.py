"""
Catalog upload service: parse, validate and stage a supplier spreadsheet.

Row-level problems never fail the upload; they are staged as invalid
rows with their error messages. Only structural problems (wrong file
type, oversized file, unreadable or empty sheet) raise FormatError, and
they do so before the previous staged set is touched.
"""

from typing import Optional
import structlog

from config import settings
from models.product import ProductImage
from models.preview import ParseSummary, StagedRowStatus
from parsers.excel_parser import parse_catalog_excel, RawRow
from services.validation_service import RowValidationService, RowValidationResult
from services.preview_service import PreviewService, staged_payload
from services.image_service import external_image, is_image_url
from exceptions import FormatError, DatabaseError

logger = structlog.get_logger(__name__)

SPREADSHEET_MIME_TYPES = [
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
]
SPREADSHEET_EXTENSIONS = (".xlsx", ".xls")


def check_spreadsheet_file(filename: Optional[str], content_type: Optional[str], size: int) -> None:
    """
    Reject uploads that are not Excel files or exceed the size limit.

    Raises:
        FormatError: If the file type or size is not accepted
    """
    name = (filename or "").lower()
    if content_type not in SPREADSHEET_MIME_TYPES and not name.endswith(SPREADSHEET_EXTENSIONS):
        raise FormatError(
            "Only Excel files (.xlsx, .xls) are allowed",
            details={"content_type": content_type, "filename": filename}
        )

    if size == 0:
        raise FormatError("Uploaded file is empty", details={"filename": filename})

    if size > settings.max_upload_size_bytes:
        raise FormatError(
            f"File too large. Maximum size is {settings.max_upload_size_mb}MB",
            details={"size_bytes": size, "max_size_mb": settings.max_upload_size_mb}
        )


def stage_images(urls: list[str]) -> tuple[list[ProductImage], list[str]]:
    """
    Turn image URLs from a spreadsheet cell into staged images.

    The first accepted URL is the main image.

    Returns:
        Tuple of (images, errors for entries that are not URLs)
    """
    images: list[ProductImage] = []
    errors: list[str] = []

    for entry in urls:
        if not is_image_url(entry):
            errors.append(f"Failed to process images: '{entry}' is not a valid image URL")
            continue
        images.append(external_image(entry.strip()))

    if images:
        images[0].is_main = True

    return images, errors


class CatalogUploadService:
    """
    Runs one spreadsheet through parser, validator and staging store.
    """

    def __init__(self):
        self.validator = RowValidationService()
        self.preview = PreviewService()

    def stage_spreadsheet(
        self,
        supplier_id: str,
        content: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> ParseSummary:
        """
        Parse, validate and stage a spreadsheet for a supplier.

        Replaces the supplier's previously staged rows.

        Args:
            supplier_id: Supplier UUID
            content: Raw file bytes
            filename: Original filename
            content_type: MIME type sent by the client

        Returns:
            ParseSummary with processed/valid/invalid/skipped counts

        Raises:
            FormatError: If the file is rejected before staging
            DatabaseError: If lookups or staging writes fail
        """
        check_spreadsheet_file(filename, content_type, len(content))

        logger.info(
            "staging_spreadsheet",
            supplier_id=supplier_id,
            filename=filename,
            size_bytes=len(content)
        )

        parsed = parse_catalog_excel(content)

        summary = ParseSummary(skipped_rows=parsed.skipped_rows)
        payloads: list[dict] = []
        category_cache: dict = {}

        for raw in parsed.rows:
            payload = self._stage_row(raw, supplier_id, category_cache)
            payloads.append(payload)

            summary.processed_rows += 1
            if payload["status"] == StagedRowStatus.VALID.value:
                summary.valid_rows += 1
            else:
                summary.invalid_rows += 1

        self.preview.replace_all(supplier_id, payloads)

        logger.info(
            "spreadsheet_staged",
            supplier_id=supplier_id,
            processed_rows=summary.processed_rows,
            valid_rows=summary.valid_rows,
            invalid_rows=summary.invalid_rows,
            skipped_rows=summary.skipped_rows
        )

        return summary

    def _stage_row(self, raw: RawRow, supplier_id: str, category_cache: dict) -> dict:
        """Validate one raw row and build its staged record."""
        images, image_errors = stage_images(raw.images)

        try:
            result = self.validator.validate(raw, supplier_id, category_cache)
        except DatabaseError:
            raise
        except Exception as e:
            logger.warning(
                "row_validation_crashed",
                row_index=raw.row_index,
                error=str(e)
            )
            result = RowValidationResult(
                normalized={"name": raw.name or "", "description": raw.description or ""},
                errors=[f"Unexpected error: {e}"]
            )

        payload = staged_payload(result, images, image_errors)
        payload["excel_row_index"] = raw.row_index
        payload["has_custom_image"] = bool(raw.images)
        return payload


# Singleton instance for convenience
_catalog_upload_service: Optional[CatalogUploadService] = None


def get_catalog_upload_service() -> CatalogUploadService:
    """Get or create CatalogUploadService instance."""
    global _catalog_upload_service
    if _catalog_upload_service is None:
        _catalog_upload_service = CatalogUploadService()
    return _catalog_upload_service
