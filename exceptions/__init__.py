"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ExternalServiceError,
    DatabaseError,
    AuthorizationError,

    # Spreadsheet
    FormatError,
    InvalidTemplateModeError,

    # Catalog
    ProductNotFoundError,

    # Staging
    StagedRowNotFoundError,
    StagedImageNotFoundError,
    InvalidStagedUpdateError,
    ImageStoreError,

    # Commit
    CommitRowError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "DatabaseError",
    "AuthorizationError",

    # Spreadsheet
    "FormatError",
    "InvalidTemplateModeError",

    # Catalog
    "ProductNotFoundError",

    # Staging
    "StagedRowNotFoundError",
    "StagedImageNotFoundError",
    "InvalidStagedUpdateError",
    "ImageStoreError",

    # Commit
    "CommitRowError",
]
