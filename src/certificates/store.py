# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Cassandra access layer for certificates.

Provides:
- Append-only history per (user, module), newest first
- Lookup by certificate id
- Current-certificate pointer per (module, user), written with each insert
"""

from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from cassandra import DriverException, RequestExecutionException
from cassandra.cluster import NoHostAvailable
from cassandra.query import BatchStatement, BatchType

from src.training.bulk import DEFAULT_PAGE_SIZE, Page, fetch_all_pages
from src.training.exceptions import TransientStoreError

from .models import Certificate


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class CertificateStore:
    """Data access for certificates."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.session = session
        self.keyspace = keyspace
        self.page_size = page_size
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        ks = self.keyspace

        self._insert_history = self.session.prepare(f"""
            INSERT INTO {ks}.certificates_by_user
            (user_id, module_id, created_at, certificate_id, file_url, issued_by)
            VALUES (?, ?, ?, ?, ?, ?)
        """)
        self._insert_by_id = self.session.prepare(f"""
            INSERT INTO {ks}.certificates_by_id
            (certificate_id, user_id, module_id, created_at, file_url, issued_by)
            VALUES (?, ?, ?, ?, ?, ?)
        """)
        self._upsert_current = self.session.prepare(f"""
            INSERT INTO {ks}.current_certificates
            (module_id, user_id, certificate_id, created_at, file_url, issued_by)
            VALUES (?, ?, ?, ?, ?, ?)
        """)

        self._get_by_id = self.session.prepare(
            f"SELECT * FROM {ks}.certificates_by_id WHERE certificate_id = ?"
        )
        self._get_current = self.session.prepare(f"""
            SELECT * FROM {ks}.current_certificates
            WHERE module_id = ? AND user_id = ?
        """)
        self._get_module_current = self.session.prepare(
            f"SELECT * FROM {ks}.current_certificates WHERE module_id = ?"
        )
        self._get_history = self.session.prepare(f"""
            SELECT * FROM {ks}.certificates_by_user
            WHERE user_id = ? AND module_id = ?
        """)
        self._get_user_history = self.session.prepare(
            f"SELECT * FROM {ks}.certificates_by_user WHERE user_id = ?"
        )
        self._get_all = self.session.prepare(
            f"SELECT * FROM {ks}.certificates_by_id"
        )

    async def _execute(self, statement: Any, params: Any = None, **kwargs: Any) -> Any:
        try:
            return await self.session.aexecute(statement, params, **kwargs)
        except (DriverException, RequestExecutionException, NoHostAvailable) as e:
            logger.warning(
                "certificate_store_unavailable",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransientStoreError(f"Certificate store unavailable: {e}") from e

    async def _fetch_all(self, statement: Any, params: tuple = ()) -> list[Any]:
        async def fetch_page(cursor: Any, page_size: int) -> Page:
            bound = statement.bind(params)
            bound.fetch_size = page_size
            result = await self._execute(bound, paging_state=cursor)
            return Page(rows=list(result.current_rows), next_cursor=result.paging_state)

        return await fetch_all_pages(fetch_page, page_size=self.page_size)

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def add_certificate(self, certificate: Certificate) -> Certificate:
        """Append a certificate and move the current pointer to it.

        History row, lookup row and pointer go out in one LOGGED batch.
        """
        c = certificate
        batch = BatchStatement(batch_type=BatchType.LOGGED)
        batch.add(
            self._insert_history,
            (c.user_id, c.module_id, c.created_at, c.certificate_id, c.file_url, c.issued_by),
        )
        batch.add(
            self._insert_by_id,
            (c.certificate_id, c.user_id, c.module_id, c.created_at, c.file_url, c.issued_by),
        )
        batch.add(
            self._upsert_current,
            (c.module_id, c.user_id, c.certificate_id, c.created_at, c.file_url, c.issued_by),
        )
        await self._execute(batch)

        logger.debug(
            "certificate_row_written",
            certificate_id=str(c.certificate_id),
            user_id=str(c.user_id),
            module_id=str(c.module_id),
        )
        return certificate

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_by_id(self, certificate_id: UUID) -> Certificate | None:
        result = await self._execute(self._get_by_id, (certificate_id,))
        row = result.one()
        return Certificate.from_row(row) if row else None

    async def get_current(self, user_id: UUID, module_id: UUID) -> Certificate | None:
        result = await self._execute(self._get_current, (module_id, user_id))
        row = result.one()
        return Certificate.from_row(row) if row else None

    async def list_history(self, user_id: UUID, module_id: UUID) -> list[Certificate]:
        """Every certificate of (user, module), newest first."""
        rows = await self._fetch_all(self._get_history, (user_id, module_id))
        certificates = [Certificate.from_row(row) for row in rows]
        return sorted(certificates, key=lambda c: c.created_at, reverse=True)

    async def list_certificates(
        self,
        user_id: UUID | None = None,
        module_id: UUID | None = None,
    ) -> list[Certificate]:
        """Certificates matching every given filter, newest first."""
        if user_id is not None and module_id is not None:
            return await self.list_history(user_id, module_id)

        if user_id is not None:
            rows = await self._fetch_all(self._get_user_history, (user_id,))
        else:
            rows = await self._fetch_all(self._get_all)

        certificates = [Certificate.from_row(row) for row in rows]
        if module_id is not None:
            certificates = [c for c in certificates if c.module_id == module_id]
        return sorted(certificates, key=lambda c: c.created_at, reverse=True)

    async def list_certified_user_ids(self, module_id: UUID) -> set[UUID]:
        """Users holding at least one certificate for the module."""
        rows = await self._fetch_all(self._get_module_current, (module_id,))
        return {row.user_id for row in rows}
