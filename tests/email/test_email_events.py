"""Tests for event-driven email delivery."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from cassandra.cluster import NoHostAvailable, Session

from src.email.events import EmailEventService, send_in_batches
from src.email.models import DEFAULT_EMAIL_EVENTS, EmailEventKey
from src.email.schemas import EmailRecipient, SendEmailResponse
from src.training.exceptions import TransientStoreError


def event_row(event_key: str, is_active: bool = True) -> SimpleNamespace:
    return SimpleNamespace(
        event_key=event_key,
        name="Training assigned",
        description=None,
        subject="You have a new training",
        is_active=is_active,
        updated_at=None,
    )


@pytest.fixture
def mock_session():
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: MagicMock(name="prepared"))
    session.aexecute = AsyncMock(return_value=MagicMock())
    return session


@pytest.fixture
def email_service():
    service = MagicMock()
    service.send_simple_email = AsyncMock(
        return_value=SendEmailResponse(success=True, message_id="abc")
    )
    return service


@pytest.fixture
def recipient() -> EmailRecipient:
    return EmailRecipient(email="maria@example.com", name="Maria Silva")


PAYLOAD = {
    "user_name": "Maria Silva",
    "module_title": "Safe Handling",
    "training_url": "https://learn.example.com/training/1",
}


class TestSendInBatches:
    """Tests for send_in_batches."""

    @pytest.mark.asyncio
    async def test_batches_of_fixed_size(self) -> None:
        batches: list[list[int]] = []
        current: list[int] = []

        async def send(item: int) -> SendEmailResponse:
            current.append(item)
            if len(current) == 2 or item == 4:
                batches.append(list(current))
                current.clear()
            return SendEmailResponse(success=True)

        tally = await send_in_batches([0, 1, 2, 3, 4], send, batch_size=2)

        assert tally.sent == 5
        assert tally.failed == 0
        assert tally.delivered == [0, 1, 2, 3, 4]
        assert batches == [[0, 1], [2, 3], [4]]

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_later_batches(self) -> None:
        """A raising send and an unsuccessful send both count as failed."""

        async def send(item: int) -> SendEmailResponse:
            if item == 1:
                raise ConnectionError("smtp down")
            return SendEmailResponse(success=item != 2)

        tally = await send_in_batches(list(range(6)), send, batch_size=2)

        assert tally.sent == 4
        assert tally.failed == 2
        assert tally.delivered == [0, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        send = AsyncMock()

        tally = await send_in_batches([], send)

        assert (tally.sent, tally.failed) == (0, 0)
        send.assert_not_called()


class TestEmailEventService:
    """Tests for EmailEventService."""

    @pytest.mark.asyncio
    async def test_enabled_event(self, mock_session, email_service) -> None:
        key = EmailEventKey.TRAINING_ASSIGNED.value
        mock_session.aexecute.return_value.one.return_value = event_row(key)
        service = EmailEventService(mock_session, "test_keyspace", email_service)

        event = await service.get_enabled_event(key)

        assert event.event_key == key

    @pytest.mark.asyncio
    async def test_inactive_event(self, mock_session, email_service) -> None:
        key = EmailEventKey.TRAINING_ASSIGNED.value
        mock_session.aexecute.return_value.one.return_value = event_row(key, False)
        service = EmailEventService(mock_session, "test_keyspace", email_service)

        assert await service.get_enabled_event(key) is None

    @pytest.mark.asyncio
    async def test_no_transport_means_disabled(self, mock_session) -> None:
        service = EmailEventService(mock_session, "test_keyspace", None)

        assert await service.get_enabled_event("training_assigned") is None
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_event_renders_and_sends(
        self, mock_session, email_service, recipient
    ) -> None:
        key = EmailEventKey.TRAINING_ASSIGNED.value
        mock_session.aexecute.return_value.one.return_value = event_row(key)
        service = EmailEventService(mock_session, "test_keyspace", email_service)

        result = await service.send_event(key, recipient, PAYLOAD)

        assert result.success is True
        kwargs = email_service.send_simple_email.await_args.kwargs
        assert kwargs["to"] == "maria@example.com"
        assert kwargs["subject"] == "You have a new training"
        assert "Safe Handling" in kwargs["body_html"]
        assert "https://learn.example.com/training/1" in kwargs["body_text"]

    @pytest.mark.asyncio
    async def test_send_event_disabled(
        self, mock_session, email_service, recipient
    ) -> None:
        mock_session.aexecute.return_value.one.return_value = None
        service = EmailEventService(mock_session, "test_keyspace", email_service)

        result = await service.send_event("training_assigned", recipient, PAYLOAD)

        assert result.success is False
        assert "not enabled" in result.error
        email_service.send_simple_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ensure_defaults_inserts_if_missing(self, mock_session) -> None:
        service = EmailEventService(mock_session, "test_keyspace")

        await service.ensure_defaults()

        assert mock_session.aexecute.await_count == len(DEFAULT_EMAIL_EVENTS)
        seeded = {call.args[1][0] for call in mock_session.aexecute.await_args_list}
        assert seeded == {key.value for key in EmailEventKey}

    @pytest.mark.asyncio
    async def test_update_event(self, mock_session) -> None:
        key = EmailEventKey.CERTIFICATE_ISSUED.value
        mock_session.aexecute.return_value.one.return_value = event_row(key)
        service = EmailEventService(mock_session, "test_keyspace")

        event = await service.update_event(key, {"is_active": False, "subject": None})

        assert event.is_active is False
        assert event.subject == "You have a new training"
        assert event.updated_at is not None

    @pytest.mark.asyncio
    async def test_update_unknown_event(self, mock_session) -> None:
        mock_session.aexecute.return_value.one.return_value = None
        service = EmailEventService(mock_session, "test_keyspace")

        assert await service.update_event("missing", {"is_active": True}) is None

    @pytest.mark.asyncio
    async def test_store_outage_is_transient_error(
        self, mock_session, email_service
    ) -> None:
        """Driver failures surface as the transient store kind, not a 500."""
        mock_session.aexecute.side_effect = NoHostAvailable("Unable to connect", {})
        service = EmailEventService(mock_session, "test_keyspace", email_service)

        with pytest.raises(TransientStoreError) as exc_info:
            await service.get_enabled_event(EmailEventKey.TRAINING_ASSIGNED.value)

        assert exc_info.value.code == "transient_store_failure"

    @pytest.mark.asyncio
    async def test_list_events_reads_every_page(self, mock_session) -> None:
        first, second = MagicMock(), MagicMock()
        first.current_rows = [event_row("b_event"), event_row("a_event")]
        first.paging_state = "page-2"
        second.current_rows = [event_row("c_event")]
        second.paging_state = None
        mock_session.aexecute.side_effect = [first, second]
        service = EmailEventService(mock_session, "test_keyspace", page_size=2)

        events = await service.list_events()

        assert [e.event_key for e in events] == ["a_event", "b_event", "c_event"]
        assert mock_session.aexecute.await_args.kwargs["paging_state"] == "page-2"
