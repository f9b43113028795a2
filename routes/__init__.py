"""
API route modules.
"""

from routes.catalog_upload import router as catalog_upload_router

__all__ = [
    "catalog_upload_router",
]
