"""Certificate API endpoints.

Provides routes for:
- Learners: own certificates and signed download URLs
- Admins: issue, regenerate, history, listing, email delivery
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from src.auth.dependencies import AdminUser, CurrentUser
from src.auth.permissions import is_admin
from src.certificates.dependencies import CertificateServiceDep
from src.certificates.schemas import (
    CertificateResponse,
    CertificateUrlResponse,
    IssueCertificateRequest,
    RegenerateCertificateRequest,
)
from src.core.logging import get_logger
from src.email.schemas import SendEmailResponse
from src.training.dependencies import handle_training_error
from src.training.exceptions import TrainingError


logger = get_logger(__name__)

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])

admin_router = APIRouter(
    prefix="/v1/admin/certificates",
    tags=["admin", "certificates"],
)


# ==============================================================================
# Learner Endpoints
# ==============================================================================


@router.get(
    "/me",
    response_model=list[CertificateResponse],
    summary="List my certificates",
)
async def list_my_certificates(
    current_user: CurrentUser,
    service: CertificateServiceDep,
) -> list[CertificateResponse]:
    try:
        certificates = await service.list_certificates(user_id=current_user.id)
    except TrainingError as e:
        raise handle_training_error(e) from e
    return [CertificateResponse.from_entity(c) for c in certificates]


@router.get(
    "/{certificate_id}/url",
    response_model=CertificateUrlResponse,
    summary="Get a short-lived download URL",
)
async def get_certificate_url(
    certificate_id: UUID,
    current_user: CurrentUser,
    service: CertificateServiceDep,
) -> CertificateUrlResponse:
    """Signed URL for a certificate; learners only reach their own."""
    try:
        certificate, signed = await service.current_url(certificate_id)
    except TrainingError as e:
        raise handle_training_error(e) from e

    if certificate.user_id != current_user.id and not is_admin(current_user.role):
        # Same answer as a missing certificate
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "not_found", "message": "Certificate not found"},
        )

    return CertificateUrlResponse(
        certificate_id=certificate.certificate_id,
        url=signed.url,
        expires_at=signed.expires_at,
    )


# ==============================================================================
# Admin Endpoints
# ==============================================================================


@admin_router.get(
    "",
    response_model=list[CertificateResponse],
    summary="List certificates",
)
async def list_certificates(
    _: AdminUser,
    service: CertificateServiceDep,
    user_id: UUID | None = Query(default=None),
    module_id: UUID | None = Query(default=None),
) -> list[CertificateResponse]:
    try:
        certificates = await service.list_certificates(
            user_id=user_id, module_id=module_id
        )
    except TrainingError as e:
        raise handle_training_error(e) from e
    return [CertificateResponse.from_entity(c) for c in certificates]


@admin_router.get(
    "/history",
    response_model=list[CertificateResponse],
    summary="Certificate history of a user on a module, newest first",
)
async def certificate_history(
    _: AdminUser,
    service: CertificateServiceDep,
    user_id: UUID = Query(...),
    module_id: UUID = Query(...),
) -> list[CertificateResponse]:
    try:
        certificates = await service.history(user_id, module_id)
    except TrainingError as e:
        raise handle_training_error(e) from e
    return [CertificateResponse.from_entity(c) for c in certificates]


@admin_router.post(
    "/issue",
    response_model=CertificateResponse,
    summary="Issue a certificate (returns the current one if it exists)",
)
async def issue_certificate(
    body: IssueCertificateRequest,
    admin: AdminUser,
    service: CertificateServiceDep,
) -> CertificateResponse:
    try:
        certificate = await service.issue(
            body.user_id, body.module_id, issued_by=admin.id
        )
    except TrainingError as e:
        raise handle_training_error(e) from e
    return CertificateResponse.from_entity(certificate)


@admin_router.post(
    "/regenerate",
    response_model=CertificateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a new certificate; history is kept",
)
async def regenerate_certificate(
    body: RegenerateCertificateRequest,
    admin: AdminUser,
    service: CertificateServiceDep,
) -> CertificateResponse:
    try:
        certificate = await service.regenerate(
            body.user_id, body.module_id, force=body.force, issued_by=admin.id
        )
    except TrainingError as e:
        raise handle_training_error(e) from e

    logger.info(
        "admin_certificate_regenerated",
        admin_id=str(admin.id),
        certificate_id=str(certificate.certificate_id),
        force=body.force,
    )
    return CertificateResponse.from_entity(certificate)


@admin_router.post(
    "/{certificate_id}/email",
    response_model=SendEmailResponse,
    summary="Email the certificate download link to its owner",
)
async def email_certificate(
    certificate_id: UUID,
    _: AdminUser,
    service: CertificateServiceDep,
) -> SendEmailResponse:
    try:
        return await service.email_certificate(certificate_id)
    except TrainingError as e:
        raise handle_training_error(e) from e
