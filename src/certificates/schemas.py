"""Pydantic schemas for certificates."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import Certificate


class CertificateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    certificate_id: UUID
    user_id: UUID
    module_id: UUID
    created_at: datetime
    file_url: str = Field(description="Stable storage path; use the URL endpoint to download")
    issued_by: UUID | None = None

    @classmethod
    def from_entity(cls, entity: Certificate) -> "CertificateResponse":
        return cls.model_validate(entity)


class IssueCertificateRequest(BaseModel):
    user_id: UUID
    module_id: UUID


class RegenerateCertificateRequest(BaseModel):
    user_id: UUID
    module_id: UUID
    force: bool = Field(
        default=False,
        description="Issue a new certificate even if one already exists",
    )


class CertificateUrlResponse(BaseModel):
    certificate_id: UUID
    url: str = Field(description="Signed download URL")
    expires_at: datetime
