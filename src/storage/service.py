"""Firebase Storage service for generated documents.

Handles certificate storage in Firebase Storage with:
- Deterministic storage paths built by the caller
- Private blobs served through time-limited signed URLs
"""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from src.config.settings import Settings


if TYPE_CHECKING:
    from google.cloud.storage import Bucket


logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """Base error for storage operations."""

    def __init__(self, message: str, code: str = "storage_error") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class StorageNotConfiguredError(StorageError):
    """Error when Firebase Storage is not configured."""

    def __init__(self, message: str = "Firebase Storage is not configured") -> None:
        super().__init__(message, "storage_not_configured")


class StorageUploadError(StorageError):
    """Error during file upload."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "upload_error")


class StorageSignError(StorageError):
    """Error while generating a signed URL."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "sign_error")


@dataclass
class StoredFile:
    """A blob written to storage."""

    path: str
    size: int
    content_type: str
    uploaded_at: datetime


@dataclass
class SignedUrl:
    url: str
    expires_at: datetime


# Firebase app singleton
_firebase_app = None
_storage_bucket: "Bucket | None" = None


def _init_firebase(settings: Settings) -> "Bucket":
    """Initialize Firebase Admin SDK and get storage bucket.

    Raises:
        StorageNotConfiguredError: If Firebase is not configured.
    """
    global _firebase_app, _storage_bucket  # noqa: PLW0603

    if _storage_bucket is not None:
        return _storage_bucket

    if not settings.firebase_configured:
        raise StorageNotConfiguredError

    # Lazy import to avoid loading Firebase SDK unless needed
    import firebase_admin  # noqa: PLC0415
    from firebase_admin import credentials, storage  # noqa: PLC0415

    creds_path = settings.firebase_credentials_path
    if creds_path and not Path(creds_path).is_absolute():
        project_root = Path(__file__).parent.parent.parent
        creds_path = str(project_root / creds_path)

    if not creds_path or not Path(creds_path).exists():
        raise StorageNotConfiguredError(
            f"Firebase credentials file not found: {creds_path}"
        )

    try:
        if _firebase_app is None:
            cred = credentials.Certificate(creds_path)
            _firebase_app = firebase_admin.initialize_app(
                cred,
                {
                    "storageBucket": settings.firebase_storage_bucket,
                    "projectId": settings.firebase_project_id,
                },
            )
            logger.info(
                "firebase_initialized",
                project_id=settings.firebase_project_id,
                bucket=settings.firebase_storage_bucket,
            )

        _storage_bucket = storage.bucket()
        return _storage_bucket

    except Exception as e:
        logger.exception("firebase_init_failed", error=str(e))
        raise StorageNotConfiguredError(f"Failed to initialize Firebase: {e}") from e


class FirebaseStorageService:
    """Service for storing generated files in Firebase Storage."""

    def __init__(self, settings: Settings, bucket: "Bucket | None" = None) -> None:
        self.settings = settings
        self._bucket = bucket

    @property
    def is_configured(self) -> bool:
        return self._bucket is not None or self.settings.firebase_configured

    def _get_bucket(self) -> "Bucket":
        """Get Firebase Storage bucket (lazy initialization)."""
        if self._bucket is None:
            self._bucket = _init_firebase(self.settings)
        return self._bucket

    def _upload_blocking(self, path: str, content: bytes, content_type: str) -> None:
        blob = self._get_bucket().blob(path)
        # Certificates are replaced by new paths, never rewritten in place
        blob.cache_control = "private, max-age=86400"
        blob.upload_from_string(content, content_type=content_type)

    async def upload_bytes(
        self,
        path: str,
        content: bytes,
        content_type: str,
    ) -> StoredFile:
        """Upload raw bytes to ``path`` (private blob).

        Raises:
            StorageNotConfiguredError: If Firebase is not configured.
            StorageUploadError: If upload fails.
        """
        if not self.is_configured:
            raise StorageNotConfiguredError

        try:
            # google-cloud-storage is synchronous
            await asyncio.to_thread(self._upload_blocking, path, content, content_type)
        except StorageNotConfiguredError:
            raise
        except Exception as e:
            logger.exception("upload_failed", storage_path=path, error=str(e))
            raise StorageUploadError(f"Failed to upload file: {e}") from e

        logger.info(
            "file_uploaded",
            storage_path=path,
            content_type=content_type,
            file_size=len(content),
        )
        return StoredFile(
            path=path,
            size=len(content),
            content_type=content_type,
            uploaded_at=datetime.now(UTC),
        )

    def _sign_blocking(self, path: str, ttl: timedelta) -> str:
        blob = self._get_bucket().blob(path)
        return blob.generate_signed_url(version="v4", expiration=ttl, method="GET")

    async def generate_signed_url(self, path: str, ttl: timedelta) -> SignedUrl:
        """Time-limited download URL for a private blob.

        Raises:
            StorageNotConfiguredError: If Firebase is not configured.
            StorageSignError: If signing fails.
        """
        if not self.is_configured:
            raise StorageNotConfiguredError

        expires_at = datetime.now(UTC) + ttl
        try:
            url = await asyncio.to_thread(self._sign_blocking, path, ttl)
        except StorageNotConfiguredError:
            raise
        except Exception as e:
            logger.exception("sign_url_failed", storage_path=path, error=str(e))
            raise StorageSignError(f"Failed to sign URL: {e}") from e

        return SignedUrl(url=url, expires_at=expires_at)
