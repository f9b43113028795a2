"""
Business logic services.

Each service handles one stage of the catalog upload pipeline.
"""

from services.category_service import CategoryService, get_category_service
from services.product_service import ProductService, get_product_service
from services.validation_service import RowValidationService, get_validation_service
from services.image_service import ImageService, get_image_service
from services.preview_service import PreviewService, get_preview_service
from services.catalog_upload_service import CatalogUploadService, get_catalog_upload_service
from services.template_service import TemplateService, get_template_service
from services.commit_service import CommitService, get_commit_service

__all__ = [
    "CategoryService",
    "get_category_service",
    "ProductService",
    "get_product_service",
    "RowValidationService",
    "get_validation_service",
    "ImageService",
    "get_image_service",
    "PreviewService",
    "get_preview_service",
    "CatalogUploadService",
    "get_catalog_upload_service",
    "TemplateService",
    "get_template_service",
    "CommitService",
    "get_commit_service",
]
