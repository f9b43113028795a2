"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
    Pagination,
)
from models.product import (
    Unit,
    ProductImage,
    CategoryResponse,
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    build_offer_fields,
)
from models.preview import (
    StagedRowStatus,
    TemplateMode,
    EDITABLE_FIELDS,
    SORTABLE_FIELDS,
    StagedRow,
    StagedRowCounts,
    StagedRowListResponse,
    StagedRowResponse,
    UploadStatusResponse,
    ParseSummary,
    UploadResponse,
    ClearResponse,
    ImageListResponse,
    ImageChangeResponse,
    CommitRequest,
    CommitResult,
    CommitResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    "Pagination",
    # Product
    "Unit",
    "ProductImage",
    "CategoryResponse",
    "ProductCreate",
    "ProductUpdate",
    "ProductResponse",
    "build_offer_fields",
    # Preview
    "StagedRowStatus",
    "TemplateMode",
    "EDITABLE_FIELDS",
    "SORTABLE_FIELDS",
    "StagedRow",
    "StagedRowCounts",
    "StagedRowListResponse",
    "StagedRowResponse",
    "UploadStatusResponse",
    "ParseSummary",
    "UploadResponse",
    "ClearResponse",
    "ImageListResponse",
    "ImageChangeResponse",
    "CommitRequest",
    "CommitResult",
    "CommitResponse",
]
