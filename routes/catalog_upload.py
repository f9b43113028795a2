"""
Catalog upload API routes.

Bulk product upload for suppliers: template download, spreadsheet
upload, staged row review/editing, image curation and commit.
Every route is scoped to a supplier and allowed only for that supplier
or an administrator.
"""

from fastapi import APIRouter, Body, Depends, File, Query, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from typing import Any, Optional
import structlog

from config import settings
from models.preview import (
    StagedRowListResponse,
    StagedRowResponse,
    UploadStatusResponse,
    UploadResponse,
    ClearResponse,
    ImageListResponse,
    ImageChangeResponse,
    CommitRequest,
    CommitResponse,
)
from services.catalog_upload_service import get_catalog_upload_service
from services.preview_service import get_preview_service
from services.commit_service import get_commit_service
from services.template_service import get_template_service, template_filename
from utils.security import AuthContext, get_current_user, authorize_supplier
from exceptions import AppError, ValidationError

logger = structlog.get_logger(__name__)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


async def _read_image(file: UploadFile) -> tuple[bytes, str, str]:
    """Read an uploaded image, enforcing type and size limits."""
    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise ValidationError(
            "Only image files are allowed",
            details={"filename": file.filename, "content_type": content_type}
        )

    content = await file.read()
    if len(content) > settings.max_image_size_bytes:
        raise ValidationError(
            f"Image too large. Maximum size is {settings.max_image_size_mb}MB",
            details={"filename": file.filename, "size_bytes": len(content)}
        )

    return content, file.filename or "image", content_type


# ===================
# TEMPLATE & UPLOAD
# ===================

@router.get("/{supplier_id}/catalog-upload/template/{mode}")
async def download_template(
    supplier_id: str,
    mode: str,
    auth: AuthContext = Depends(get_current_user)
):
    """
    Download the catalog upload template.

    mode "new" gives an empty template; "old" is pre-filled with the
    supplier's current products.

    Raises:
        422: Invalid mode
    """
    try:
        authorize_supplier(auth, supplier_id, "download templates")

        output = get_template_service().generate(mode, supplier_id)
        filename = template_filename(mode, supplier_id)

        return StreamingResponse(
            output,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )

    except Exception as e:
        return handle_error(e)


@router.post("/{supplier_id}/catalog-upload/upload", response_model=UploadResponse)
async def upload_catalog(
    supplier_id: str,
    file: UploadFile = File(..., description="Excel catalog file (.xlsx or .xls)"),
    auth: AuthContext = Depends(get_current_user)
):
    """
    Upload a catalog spreadsheet.

    Every data row is validated and staged; invalid rows are staged with
    their errors. Replaces the supplier's previously staged rows.

    Raises:
        422: Wrong file type, file too large, or unreadable/empty sheet
    """
    logger.info(
        "catalog_upload_started",
        supplier_id=supplier_id,
        filename=file.filename,
        content_type=file.content_type
    )

    try:
        authorize_supplier(auth, supplier_id, "upload products")

        content = await file.read()
        summary = get_catalog_upload_service().stage_spreadsheet(
            supplier_id,
            content,
            filename=file.filename,
            content_type=file.content_type
        )

        return UploadResponse.from_summary(summary)

    except Exception as e:
        return handle_error(e)


# ===================
# STAGED ROWS
# ===================

@router.get(
    "/{supplier_id}/catalog-upload/preview-products",
    response_model=StagedRowListResponse
)
async def list_preview_products(
    supplier_id: str,
    status: Optional[str] = Query(None, description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=100, description="Rows per page"),
    sort_by: str = Query("excel_row_index", description="Sort field"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$", description="Sort direction"),
    auth: AuthContext = Depends(get_current_user)
):
    """
    List staged rows with status counts.
    """
    try:
        authorize_supplier(auth, supplier_id, "view preview products")

        return get_preview_service().list_rows(
            supplier_id,
            status=status,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order
        )

    except Exception as e:
        return handle_error(e)


@router.get(
    "/{supplier_id}/catalog-upload/upload-status",
    response_model=UploadStatusResponse
)
async def get_upload_status(
    supplier_id: str,
    auth: AuthContext = Depends(get_current_user)
):
    """
    Staged row counts by status and time of the latest upload.
    """
    try:
        authorize_supplier(auth, supplier_id, "view upload status")
        return get_preview_service().status_summary(supplier_id)

    except Exception as e:
        return handle_error(e)


@router.patch(
    "/{supplier_id}/catalog-upload/preview-products/{row_id}",
    response_model=StagedRowResponse
)
async def update_preview_product(
    supplier_id: str,
    row_id: str,
    data: dict[str, Any] = Body(...),
    auth: AuthContext = Depends(get_current_user)
):
    """
    Edit a staged row. The row is re-validated after the edit.

    Raises:
        404: Row not found
        422: Field outside the editable set
    """
    try:
        authorize_supplier(auth, supplier_id, "edit preview products")

        row = get_preview_service().update_row(supplier_id, row_id, data)

        return StagedRowResponse(
            preview_product=row,
            message="Preview product updated successfully"
        )

    except Exception as e:
        return handle_error(e)


@router.delete(
    "/{supplier_id}/catalog-upload/preview-products",
    response_model=ClearResponse
)
async def clear_preview_products(
    supplier_id: str,
    auth: AuthContext = Depends(get_current_user)
):
    """
    Delete every staged row of the supplier.
    """
    try:
        authorize_supplier(auth, supplier_id, "clear preview products")

        deleted = get_preview_service().clear(supplier_id)
        return ClearResponse(deleted_count=deleted)

    except Exception as e:
        return handle_error(e)


# ===================
# IMAGES
# ===================

@router.get(
    "/{supplier_id}/catalog-upload/preview-products/{row_id}/images",
    response_model=ImageListResponse
)
async def get_preview_product_images(
    supplier_id: str,
    row_id: str,
    auth: AuthContext = Depends(get_current_user)
):
    """
    Images attached to a staged row.
    """
    try:
        authorize_supplier(auth, supplier_id, "view preview products")

        row = get_preview_service().get_row(supplier_id, row_id)
        return ImageListResponse(
            images=row.images,
            product_name=row.name,
            total_images=len(row.images)
        )

    except Exception as e:
        return handle_error(e)


@router.post(
    "/{supplier_id}/catalog-upload/preview-products/{row_id}/upload-image",
    response_model=ImageChangeResponse
)
async def upload_preview_product_image(
    supplier_id: str,
    row_id: str,
    image: UploadFile = File(..., description="Product image"),
    auth: AuthContext = Depends(get_current_user)
):
    """
    Upload one image to a staged row.

    Raises:
        422: Not an image or too large
        503: Image store failure
    """
    try:
        authorize_supplier(auth, supplier_id, "upload images")

        content, filename, content_type = await _read_image(image)
        row, uploaded = get_preview_service().attach_image(
            supplier_id, row_id, content, filename, content_type
        )

        return ImageChangeResponse(
            preview_product=row,
            image=uploaded,
            uploaded_images=[uploaded],
            message="Image uploaded successfully"
        )

    except Exception as e:
        return handle_error(e)


@router.post(
    "/{supplier_id}/catalog-upload/preview-products/{row_id}/upload-images",
    response_model=ImageChangeResponse
)
async def upload_preview_product_images(
    supplier_id: str,
    row_id: str,
    images: list[UploadFile] = File(..., description="Product images"),
    auth: AuthContext = Depends(get_current_user)
):
    """
    Upload several images to a staged row.

    Images that fail to upload are skipped.

    Raises:
        422: No files, too many files, or a file that is not an image
        503: No image could be uploaded
    """
    try:
        authorize_supplier(auth, supplier_id, "upload images")

        if not images:
            raise ValidationError("No images provided")
        if len(images) > settings.max_images_per_request:
            raise ValidationError(
                f"Maximum {settings.max_images_per_request} images per upload",
                details={"provided": len(images)}
            )

        files = [await _read_image(image) for image in images]
        row, uploaded = get_preview_service().attach_images(supplier_id, row_id, files)

        return ImageChangeResponse(
            preview_product=row,
            uploaded_images=uploaded,
            message=f"{len(uploaded)} image(s) uploaded successfully"
        )

    except Exception as e:
        return handle_error(e)


@router.patch(
    "/{supplier_id}/catalog-upload/preview-products/{row_id}/images/{image_id}/set-main",
    response_model=ImageChangeResponse
)
async def set_main_preview_product_image(
    supplier_id: str,
    row_id: str,
    image_id: str,
    auth: AuthContext = Depends(get_current_user)
):
    """
    Make an image the main image of a staged row.

    Raises:
        404: Row or image not found
    """
    try:
        authorize_supplier(auth, supplier_id, "edit preview products")

        row = get_preview_service().set_main_image(supplier_id, row_id, image_id)
        return ImageChangeResponse(
            preview_product=row,
            image=row.main_image,
            message="Main image updated successfully"
        )

    except Exception as e:
        return handle_error(e)


@router.delete(
    "/{supplier_id}/catalog-upload/preview-products/{row_id}/images/{image_id}",
    response_model=ImageChangeResponse
)
async def delete_preview_product_image(
    supplier_id: str,
    row_id: str,
    image_id: str,
    auth: AuthContext = Depends(get_current_user)
):
    """
    Remove an image from a staged row.

    Raises:
        404: Row or image not found
    """
    try:
        authorize_supplier(auth, supplier_id, "edit preview products")

        row, removed = get_preview_service().remove_image(supplier_id, row_id, image_id)
        return ImageChangeResponse(
            preview_product=row,
            image=removed,
            message="Image deleted successfully"
        )

    except Exception as e:
        return handle_error(e)


# ===================
# COMMIT
# ===================

@router.post(
    "/{supplier_id}/catalog-upload/confirm-upload",
    response_model=CommitResponse
)
def confirm_upload(
    supplier_id: str,
    data: Optional[CommitRequest] = Body(None),
    auth: AuthContext = Depends(get_current_user)
):
    """
    Commit staged rows into the product catalog.

    Plain def so the paged commit runs in the threadpool. Row failures
    are reported in the result; the request itself still succeeds.
    """
    try:
        authorize_supplier(auth, supplier_id, "confirm uploads")

        data = data or CommitRequest()
        result = get_commit_service().commit(
            supplier_id,
            include_invalid=data.process_invalid,
            batch_size=data.batch_size
        )

        return CommitResponse.from_result(result)

    except Exception as e:
        return handle_error(e)
