"""Storage module for generated files in Firebase Storage."""

from src.storage.service import (
    FirebaseStorageService,
    SignedUrl,
    StorageError,
    StorageNotConfiguredError,
    StorageSignError,
    StorageUploadError,
    StoredFile,
)


__all__ = [
    "FirebaseStorageService",
    "SignedUrl",
    "StorageError",
    "StorageNotConfiguredError",
    "StorageSignError",
    "StorageUploadError",
    "StoredFile",
]
