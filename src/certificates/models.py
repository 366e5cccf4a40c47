"""Certificate data models.

Certificates are append-only: every issue or regeneration writes a new row and
older rows stay as history. ``current_certificates`` holds a pointer to the
newest certificate per (module, user), written in the same LOGGED batch as the
history row so reads never scan the history.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from src.training.models import ensure_utc_aware


CERTIFICATES_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_user (
    user_id UUID,
    module_id UUID,
    created_at TIMESTAMP,
    certificate_id UUID,
    file_url TEXT,
    issued_by UUID,
    PRIMARY KEY ((user_id), module_id, created_at, certificate_id)
) WITH CLUSTERING ORDER BY (module_id ASC, created_at DESC, certificate_id ASC)
"""

CERTIFICATES_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_id (
    certificate_id UUID PRIMARY KEY,
    user_id UUID,
    module_id UUID,
    created_at TIMESTAMP,
    file_url TEXT,
    issued_by UUID
)
"""

CURRENT_CERTIFICATES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.current_certificates (
    module_id UUID,
    user_id UUID,
    certificate_id UUID,
    created_at TIMESTAMP,
    file_url TEXT,
    issued_by UUID,
    PRIMARY KEY ((module_id), user_id)
)
"""

CERTIFICATES_TABLES_CQL = [
    CERTIFICATES_BY_USER_TABLE_CQL,
    CERTIFICATES_BY_ID_TABLE_CQL,
    CURRENT_CERTIFICATES_TABLE_CQL,
]


@dataclass
class Certificate:
    """An issued proof of completion.

    ``file_url`` is a stable storage path, never a pre-signed URL.
    """

    certificate_id: UUID
    user_id: UUID
    module_id: UUID
    created_at: datetime
    file_url: str
    issued_by: UUID | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Certificate":
        return cls(
            certificate_id=row.certificate_id,
            user_id=row.user_id,
            module_id=row.module_id,
            created_at=ensure_utc_aware(row.created_at),
            file_url=row.file_url,
            issued_by=row.issued_by,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "certificate_id": str(self.certificate_id),
            "user_id": str(self.user_id),
            "module_id": str(self.module_id),
            "created_at": self.created_at.isoformat(),
            "file_url": self.file_url,
            "issued_by": str(self.issued_by) if self.issued_by else None,
        }
