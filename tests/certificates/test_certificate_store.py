"""Tests for the Cassandra certificate store against a mocked session."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock, patch
from uuid import uuid4

import pytest
from cassandra.cluster import NoHostAvailable, Session
from cassandra.query import BatchType

from src.certificates.models import Certificate
from src.certificates.store import CertificateStore
from src.training.exceptions import TransientStoreError


def certificate_row(user_id, module_id, created_at):
    return SimpleNamespace(
        certificate_id=uuid4(),
        user_id=user_id,
        module_id=module_id,
        created_at=created_at,
        file_url=f"certificates/{user_id}/{module_id}/x.pdf",
        issued_by=None,
    )


def result_page(rows, paging_state=None):
    result = MagicMock()
    result.current_rows = rows
    result.paging_state = paging_state
    return result


@pytest.fixture
def mock_session():
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: MagicMock(name="prepared"))
    session.aexecute = AsyncMock(return_value=MagicMock())
    return session


@pytest.fixture
def store(mock_session) -> CertificateStore:
    return CertificateStore(session=mock_session, keyspace="test_keyspace")


class TestAddCertificate:
    @pytest.mark.asyncio
    async def test_single_logged_batch(self, store, mock_session) -> None:
        """History row, lookup row and current pointer are written together."""
        certificate = Certificate(
            certificate_id=uuid4(),
            user_id=uuid4(),
            module_id=uuid4(),
            created_at=datetime.now(UTC),
            file_url="certificates/a/b/c.pdf",
        )

        with patch("src.certificates.store.BatchStatement") as batch_cls:
            result = await store.add_certificate(certificate)

        assert result is certificate
        batch_cls.assert_called_once_with(batch_type=BatchType.LOGGED)
        assert batch_cls.return_value.add.call_count == 3
        mock_session.aexecute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unavailable_store(self, store, mock_session) -> None:
        mock_session.aexecute.side_effect = NoHostAvailable("down", {})
        certificate = Certificate(
            certificate_id=uuid4(),
            user_id=uuid4(),
            module_id=uuid4(),
            created_at=datetime.now(UTC),
            file_url="certificates/a/b/c.pdf",
        )

        with patch("src.certificates.store.BatchStatement"):
            with pytest.raises(TransientStoreError) as exc_info:
                await store.add_certificate(certificate)

        assert exc_info.value.code == "transient_store_failure"


class TestReads:
    @pytest.mark.asyncio
    async def test_get_by_id_missing(self, store, mock_session) -> None:
        mock_session.aexecute.return_value.one.return_value = None

        assert await store.get_by_id(uuid4()) is None

    @pytest.mark.asyncio
    async def test_get_current(self, store, mock_session) -> None:
        user_id, module_id = uuid4(), uuid4()
        row = certificate_row(user_id, module_id, datetime(2026, 5, 1, 12, 0))
        mock_session.aexecute.return_value.one.return_value = row

        certificate = await store.get_current(user_id, module_id)

        assert certificate.certificate_id == row.certificate_id
        # Naive driver timestamps come back as UTC
        assert certificate.created_at.tzinfo is not None
        assert mock_session.aexecute.await_args.args[1] == (module_id, user_id)

    @pytest.mark.asyncio
    async def test_history_newest_first_across_pages(
        self, mock_session
    ) -> None:
        user_id, module_id = uuid4(), uuid4()
        base = datetime(2026, 5, 1, tzinfo=UTC)
        rows = [
            certificate_row(user_id, module_id, base + timedelta(days=d))
            for d in (1, 3, 2)
        ]
        mock_session.aexecute.side_effect = [
            result_page(rows[:2], paging_state="next"),
            result_page(rows[2:]),
        ]
        store = CertificateStore(mock_session, "test_keyspace", page_size=2)

        history = await store.list_history(user_id, module_id)

        assert [c.created_at.day for c in history] == [4, 3, 2]
        assert mock_session.aexecute.await_count == 2

    @pytest.mark.asyncio
    async def test_list_filters_by_module(self, store, mock_session) -> None:
        user_id, wanted, other = uuid4(), uuid4(), uuid4()
        now = datetime.now(UTC)
        mock_session.aexecute.return_value = result_page(
            [certificate_row(user_id, wanted, now), certificate_row(user_id, other, now)]
        )

        found = await store.list_certificates(module_id=wanted)

        assert [c.module_id for c in found] == [wanted]

    @pytest.mark.asyncio
    async def test_certified_user_ids(self, store, mock_session) -> None:
        module_id = uuid4()
        users = [uuid4(), uuid4()]
        mock_session.aexecute.return_value = result_page(
            [certificate_row(u, module_id, datetime.now(UTC)) for u in users]
        )

        assert await store.list_certified_user_ids(module_id) == set(users)
