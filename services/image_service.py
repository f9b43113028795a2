"""
Image store for staged product images.

Uploads go to a Supabase Storage bucket and are served by public URL.
Images taken from spreadsheet URLs carry a synthetic external_<uuid>
reference and have nothing stored.
"""

import re
import uuid
from typing import Optional
import structlog

from config import get_supabase_client, settings
from models.product import ProductImage
from exceptions import ImageStoreError

logger = structlog.get_logger(__name__)

EXTERNAL_REF_PREFIX = "external_"


def external_image(url: str) -> ProductImage:
    """Image entry for a URL taken from a spreadsheet."""
    return ProductImage(url=url, external_ref=f"{EXTERNAL_REF_PREFIX}{uuid.uuid4()}")


def is_stored(external_ref: Optional[str]) -> bool:
    """True if the reference points at an object in the image store."""
    return bool(external_ref) and not external_ref.startswith(EXTERNAL_REF_PREFIX)


def is_image_url(value: str) -> bool:
    """True for absolute http(s) URLs."""
    return bool(re.match(r"^https?://\S+$", value.strip(), re.IGNORECASE))


class ImageService:
    """
    Service for storing and deleting product images.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.bucket = settings.image_bucket
        self.folder = settings.preview_image_folder

    def upload(self, content: bytes, filename: str, content_type: str) -> ProductImage:
        """
        Upload one image.

        Args:
            content: Raw image bytes
            filename: Original filename
            content_type: MIME type sent by the client

        Returns:
            ProductImage with the public URL and storage path as external_ref

        Raises:
            ImageStoreError: If the store rejects the upload
        """
        unique_id = str(uuid.uuid4())[:8]
        safe_filename = re.sub(r"[^A-Za-z0-9._-]", "_", filename or "image")
        storage_path = f"{self.folder}/{unique_id}_{safe_filename}"

        logger.debug(
            "uploading_image",
            storage_path=storage_path,
            size_bytes=len(content)
        )

        try:
            bucket = self.db.storage.from_(self.bucket)
            bucket.upload(
                storage_path,
                content,
                file_options={"content-type": content_type}
            )
            url = bucket.get_public_url(storage_path)

        except Exception as e:
            logger.error(
                "image_upload_failed",
                storage_path=storage_path,
                error=str(e)
            )
            raise ImageStoreError(
                f"Failed to upload image: {e}",
                details={"filename": filename}
            )

        logger.info("image_uploaded", storage_path=storage_path)
        return ProductImage(url=url, external_ref=storage_path)

    def delete(self, external_ref: Optional[str]) -> bool:
        """
        Delete a stored image.

        External (spreadsheet URL) images are skipped.

        Returns:
            True if an object was removed from the store

        Raises:
            ImageStoreError: If the store rejects the delete
        """
        if not is_stored(external_ref):
            return False

        try:
            self.db.storage.from_(self.bucket).remove([external_ref])
        except Exception as e:
            logger.error("image_delete_failed", external_ref=external_ref, error=str(e))
            raise ImageStoreError(
                f"Failed to delete image: {e}",
                details={"external_ref": external_ref}
            )

        logger.info("image_deleted", external_ref=external_ref)
        return True

    def delete_quietly(self, external_refs: list[Optional[str]]) -> int:
        """
        Best-effort delete of several images.

        Failures are logged and ignored; staged data stays authoritative.

        Returns:
            Number of images removed
        """
        removed = 0
        for ref in external_refs:
            try:
                if self.delete(ref):
                    removed += 1
            except ImageStoreError as e:
                logger.warning("image_cleanup_skipped", external_ref=ref, error=e.message)
        return removed


# Singleton instance for convenience
_image_service: Optional[ImageService] = None


def get_image_service() -> ImageService:
    """Get or create ImageService instance."""
    global _image_service
    if _image_service is None:
        _image_service = ImageService()
    return _image_service
