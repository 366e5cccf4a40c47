"""Tests for realtime change events and the dashboard refresh gate."""

import json
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import redis.asyncio as redis

from src.training.realtime import ChangeEntity, RefreshGate, TrainingChangePublisher
from src.training.websocket_router import handle_client_message


class TestRefreshGate:
    """Tests for RefreshGate."""

    def test_releases_when_idle(self) -> None:
        gate = RefreshGate()

        assert gate.offer() == 1
        assert gate.offer() == 2
        assert gate.token == 2

    def test_holds_while_editing(self) -> None:
        gate = RefreshGate()
        gate.set_editing(True)

        assert gate.offer() is None
        assert gate.offer() is None
        assert gate.pending is True
        assert gate.token == 0

    def test_coalesces_into_one_refresh(self) -> None:
        """Many events during editing release exactly one refresh afterwards."""
        gate = RefreshGate()
        gate.set_editing(True)
        for _ in range(5):
            gate.offer()

        assert gate.set_editing(False) == 1
        assert gate.pending is False
        assert gate.set_editing(False) is None

    def test_leaving_edit_without_events(self) -> None:
        gate = RefreshGate()
        gate.set_editing(True)

        assert gate.set_editing(False) is None
        assert gate.token == 0

    def test_tokens_identify_latest_refresh(self) -> None:
        gate = RefreshGate()
        stale = gate.offer()
        latest = gate.offer()

        assert not gate.is_current(stale)
        assert gate.is_current(latest)


class FakeWebSocket:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send_json(self, data: dict) -> None:
        self.sent.append(data)


class TestClientMessages:
    """Messages from the admin client drive the gate."""

    @pytest.mark.asyncio
    async def test_editing_end_flushes_refresh(self) -> None:
        websocket = FakeWebSocket()
        gate = RefreshGate()

        await handle_client_message(websocket, gate, {"type": "editing", "value": True})
        gate.offer()
        await handle_client_message(websocket, gate, {"type": "editing", "value": False})

        assert websocket.sent == [{"type": "refresh", "token": 1, "event": None}]

    @pytest.mark.asyncio
    async def test_ping(self) -> None:
        websocket = FakeWebSocket()

        await handle_client_message(websocket, RefreshGate(), {"type": "ping"})

        assert websocket.sent == [{"type": "pong"}]

    @pytest.mark.asyncio
    async def test_unknown_messages_ignored(self) -> None:
        websocket = FakeWebSocket()

        await handle_client_message(websocket, RefreshGate(), {"type": "hello"})

        assert websocket.sent == []


class TestTrainingChangePublisher:
    @pytest.mark.asyncio
    async def test_noop_without_redis(self) -> None:
        await TrainingChangePublisher(None).publish(ChangeEntity.PROGRESS, "approved")

    @pytest.mark.asyncio
    async def test_publishes_event(self) -> None:
        client = AsyncMock()
        module_id, user_id = uuid4(), uuid4()

        await TrainingChangePublisher(client).publish(
            ChangeEntity.ASSIGNMENT, "reset", module_id=module_id, user_id=user_id
        )

        channel, payload = client.publish.await_args.args
        assert channel == "training:changes"
        event = json.loads(payload)
        assert event["entity"] == "assignment"
        assert event["action"] == "reset"
        assert event["module_id"] == str(module_id)
        assert event["user_id"] == str(user_id)

    @pytest.mark.asyncio
    async def test_redis_failure_is_not_raised(self) -> None:
        client = AsyncMock()
        client.publish.side_effect = redis.ConnectionError("down")

        await TrainingChangePublisher(client).publish(ChangeEntity.MODULE, "created")

        client.publish.assert_awaited_once()
