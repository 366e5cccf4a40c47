"""Certificate lifecycle.

Provides:
- issue: idempotent, requires every active lesson completed
- regenerate: always appends a new certificate (refused unless forced when
  one exists)
- history, listing, signed download URLs, certificate emails

Certificates are a read-only projection of completion state: nothing here
writes progress or assignments.
"""

from datetime import timedelta
from uuid import UUID, uuid4

import structlog

from src.email.events import EmailEventService
from src.email.models import EmailEventKey
from src.email.schemas import EmailRecipient, SendEmailResponse
from src.notifications.models import create_certificate_notification
from src.notifications.service import NotificationService
from src.storage.service import FirebaseStorageService, SignedUrl, StorageError
from src.training.exceptions import (
    CertificateAlreadyExistsError,
    GenerationFailedError,
    ModuleNotCompletedError,
    NoActiveLessonsError,
    NotFoundError,
    TransientStoreError,
)
from src.training.models import TrainingModule, UserProfile, utc_now
from src.training.realtime import ChangeEntity, TrainingChangePublisher
from src.training.store import TrainingStore

from .models import Certificate
from .renderer import CertificateRenderer
from .store import CertificateStore


logger = structlog.get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


class CertificateService:
    """Issue, regenerate and serve certificates."""

    def __init__(
        self,
        training_store: TrainingStore,
        certificate_store: CertificateStore,
        renderer: CertificateRenderer,
        storage: FirebaseStorageService,
        notification_service: NotificationService | None = None,
        email_events: EmailEventService | None = None,
        publisher: TrainingChangePublisher | None = None,
        storage_prefix: str = "certificates",
        signed_url_ttl_seconds: int = 3600,
        email_link_ttl_days: int = 7,
    ):
        self.training_store = training_store
        self.certificate_store = certificate_store
        self.renderer = renderer
        self.storage = storage
        self.notification_service = notification_service
        self.email_events = email_events
        self.publisher = publisher
        self.storage_prefix = storage_prefix.strip("/")
        self.signed_url_ttl = timedelta(seconds=signed_url_ttl_seconds)
        self.email_link_ttl_days = email_link_ttl_days

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def _require_module(self, module_id: UUID) -> TrainingModule:
        module = await self.training_store.get_module(module_id)
        if not module:
            raise NotFoundError("Module not found")
        return module

    async def _require_profile(self, user_id: UUID) -> UserProfile:
        profile = await self.training_store.get_profile(user_id)
        if not profile:
            raise NotFoundError("User not found")
        return profile

    async def _require_certificate(self, certificate_id: UUID) -> Certificate:
        certificate = await self.certificate_store.get_by_id(certificate_id)
        if not certificate:
            raise NotFoundError("Certificate not found")
        return certificate

    async def _ensure_completed(self, user_id: UUID, module_id: UUID) -> None:
        lessons = await self.training_store.get_lessons(module_id, active_only=True)
        if not lessons:
            raise NoActiveLessonsError
        progress = await self.training_store.get_progress(
            user_id=user_id, module_id=module_id
        )
        completed = {p.lesson_id for p in progress if p.is_completed}
        missing = [lesson for lesson in lessons if lesson.lesson_id not in completed]
        if missing:
            raise ModuleNotCompletedError(
                f"{len(missing)} of {len(lessons)} lessons are not completed"
            )

    def storage_path(self, certificate: Certificate) -> str:
        return (
            f"{self.storage_prefix}/{certificate.user_id}/"
            f"{certificate.module_id}/{certificate.certificate_id}.pdf"
        )

    # ==========================================================================
    # Issue / Regenerate
    # ==========================================================================

    async def issue(
        self, user_id: UUID, module_id: UUID, issued_by: UUID | None = None
    ) -> Certificate:
        """Return the current certificate, generating the first one if needed.

        Raises:
            NotFoundError: If the module or user does not exist
            NoActiveLessonsError: If the module has no active lessons
            ModuleNotCompletedError: If an active lesson is not completed
            GenerationFailedError: If rendering or storing the document fails
        """
        module = await self._require_module(module_id)
        current = await self.certificate_store.get_current(user_id, module_id)
        if current is not None:
            return current

        profile = await self._require_profile(user_id)
        await self._ensure_completed(user_id, module_id)
        return await self._generate(profile, module, issued_by)

    async def regenerate(
        self,
        user_id: UUID,
        module_id: UUID,
        force: bool = False,
        issued_by: UUID | None = None,
    ) -> Certificate:
        """Append a new certificate; older ones stay in history untouched.

        Raises:
            NotFoundError: If the module or user does not exist
            CertificateAlreadyExistsError: If one exists and ``force`` is false
            GenerationFailedError: If rendering or storing the document fails
        """
        module = await self._require_module(module_id)
        profile = await self._require_profile(user_id)

        if not force:
            current = await self.certificate_store.get_current(user_id, module_id)
            if current is not None:
                raise CertificateAlreadyExistsError

        return await self._generate(profile, module, issued_by)

    async def _generate(
        self,
        profile: UserProfile,
        module: TrainingModule,
        issued_by: UUID | None,
    ) -> Certificate:
        certificate = Certificate(
            certificate_id=uuid4(),
            user_id=profile.user_id,
            module_id=module.module_id,
            created_at=utc_now(),
            file_url="",
            issued_by=issued_by,
        )
        certificate.file_url = self.storage_path(certificate)

        document = await self.renderer.render(
            profile, module, certificate.certificate_id, certificate.created_at
        )
        try:
            await self.storage.upload_bytes(
                certificate.file_url, document, PDF_CONTENT_TYPE
            )
        except StorageError as e:
            raise GenerationFailedError(
                f"Certificate could not be stored: {e.message}"
            ) from e

        await self.certificate_store.add_certificate(certificate)

        logger.info(
            "certificate_issued",
            certificate_id=str(certificate.certificate_id),
            user_id=str(certificate.user_id),
            module_id=str(certificate.module_id),
            issued_by=str(issued_by) if issued_by else None,
        )

        await self._notify_issued(certificate, module)
        if self.publisher:
            await self.publisher.publish(
                ChangeEntity.CERTIFICATE,
                "issued",
                module_id=certificate.module_id,
                user_id=certificate.user_id,
            )
        return certificate

    async def _notify_issued(
        self, certificate: Certificate, module: TrainingModule
    ) -> None:
        """In-app notice; the certificate stands even if this fails."""
        if not self.notification_service:
            return
        try:
            await self.notification_service.create_notification(
                create_certificate_notification(
                    certificate.user_id,
                    certificate.module_id,
                    module.title,
                    certificate.certificate_id,
                )
            )
        except Exception as e:
            logger.exception(
                "certificate_notification_failed",
                certificate_id=str(certificate.certificate_id),
                error=str(e),
            )

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def history(self, user_id: UUID, module_id: UUID) -> list[Certificate]:
        """Every certificate of (user, module), newest first."""
        return await self.certificate_store.list_history(user_id, module_id)

    async def list_certificates(
        self, user_id: UUID | None = None, module_id: UUID | None = None
    ) -> list[Certificate]:
        return await self.certificate_store.list_certificates(
            user_id=user_id, module_id=module_id
        )

    async def _sign(self, certificate: Certificate, ttl: timedelta) -> SignedUrl:
        try:
            return await self.storage.generate_signed_url(certificate.file_url, ttl)
        except StorageError as e:
            raise TransientStoreError(
                f"Certificate storage unavailable: {e.message}"
            ) from e

    async def current_url(
        self, certificate_id: UUID
    ) -> tuple[Certificate, SignedUrl]:
        """Short-lived download URL, signed at read time.

        Raises:
            NotFoundError: If the certificate does not exist
            TransientStoreError: If storage cannot sign the URL
        """
        certificate = await self._require_certificate(certificate_id)
        return certificate, await self._sign(certificate, self.signed_url_ttl)

    # ==========================================================================
    # Email
    # ==========================================================================

    async def email_certificate(self, certificate_id: UUID) -> SendEmailResponse:
        """Email the owner a download link valid for ``email_link_ttl_days``.

        Raises:
            NotFoundError: If the certificate, module or user does not exist
        """
        certificate = await self._require_certificate(certificate_id)
        module = await self._require_module(certificate.module_id)
        profile = await self._require_profile(certificate.user_id)
        if not profile.email:
            raise NotFoundError("User has no email address")

        event_key = EmailEventKey.CERTIFICATE_ISSUED.value
        event = None
        if self.email_events:
            event = await self.email_events.get_enabled_event(event_key)
        if event is None:
            logger.info("certificate_email_disabled", certificate_id=str(certificate_id))
            return SendEmailResponse(
                success=False, error=f"Email event '{event_key}' is not enabled"
            )

        link = await self._sign(certificate, timedelta(days=self.email_link_ttl_days))
        result = await self.email_events.send(
            event,
            EmailRecipient(email=profile.email, name=profile.display_name),
            {
                "user_name": profile.display_name,
                "module_title": module.title,
                "download_url": link.url,
                "link_ttl_days": self.email_link_ttl_days,
            },
        )

        logger.info(
            "certificate_emailed",
            certificate_id=str(certificate_id),
            user_id=str(certificate.user_id),
            success=result.success,
        )
        return result
