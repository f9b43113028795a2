"""
Custom exception classes for the application.

Every error the API returns is an AppError rendered through to_dict().
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "PRODUCT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


class AuthorizationError(AppError):
    """Caller may not act for this supplier (403)."""

    def __init__(self, supplier_id: str, action: str = "access"):
        super().__init__(
            code="SUPPLIER_ACCESS_DENIED",
            message=f"You are not authorized to {action} for this supplier",
            status_code=403,
            details={"supplier_id": supplier_id}
        )


# ===================
# SPREADSHEET ERRORS
# ===================

class FormatError(ValidationError):
    """Spreadsheet is malformed, empty, too large or of the wrong type."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="SPREADSHEET_FORMAT_ERROR",
            message=message,
            details=details
        )


class InvalidTemplateModeError(ValidationError):
    """Template mode must be 'new' or 'old'."""

    def __init__(self, mode: str):
        super().__init__(
            code="INVALID_TEMPLATE_MODE",
            message="Type must be 'new' or 'old'",
            details={"provided": mode, "valid": ["new", "old"]}
        )


# ===================
# CATALOG ERRORS
# ===================

class ProductNotFoundError(NotFoundError):
    """Production product not found."""

    def __init__(self, product_id: str):
        super().__init__(
            resource="Product",
            identifier=product_id,
            code="PRODUCT_NOT_FOUND"
        )


# ===================
# STAGING ERRORS
# ===================

class StagedRowNotFoundError(NotFoundError):
    """Staged row not found for this supplier."""

    def __init__(self, row_id: str):
        super().__init__(
            resource="Preview product",
            identifier=row_id,
            code="PREVIEW_PRODUCT_NOT_FOUND"
        )


class StagedImageNotFoundError(NotFoundError):
    """Image not attached to the staged row."""

    def __init__(self, image_ref: str):
        super().__init__(
            resource="Image",
            identifier=image_ref,
            code="PREVIEW_IMAGE_NOT_FOUND"
        )


class InvalidStagedUpdateError(ValidationError):
    """Staged row update touched a field outside the allow-list."""

    def __init__(self, rejected: list[str], allowed: list[str]):
        super().__init__(
            code="INVALID_PREVIEW_UPDATE",
            message="Invalid updates! Only allowed fields: " + ", ".join(allowed),
            details={"rejected": rejected, "allowed": allowed}
        )


class ImageStoreError(ExternalServiceError):
    """Image store upload or delete failed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="image_store",
            message=message,
            details=details
        )


# ===================
# COMMIT ERRORS
# ===================

class CommitRowError(AppError):
    """
    A single staged row could not be committed.

    Raised and caught inside the committer; the row stays staged
    with status=failed.
    """

    def __init__(self, row_index: int, name: str, message: str):
        self.row_index = row_index
        self.name = name
        super().__init__(
            code="COMMIT_ROW_FAILED",
            message=message,
            status_code=422,
            details={"row_index": row_index, "name": name}
        )

    def formatted(self) -> str:
        """User-facing line for the commit result."""
        return f"Row {self.row_index}: {self.name} - {self.message}"
