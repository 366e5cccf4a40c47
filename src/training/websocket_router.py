"""WebSocket API for the admin training dashboard.

Provides:
- WS /ws/admin/training - Refresh signals for progress/assignment changes

Change events from the ``training:changes`` Redis channel pass through a
per-connection ``RefreshGate``: while the client says it is editing, refreshes
are held back and coalesced into one.
"""

import asyncio
import contextlib
import json
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from jose import JWTError

from src.auth.dependencies import user_from_token
from src.auth.permissions import is_admin
from src.core.logging import get_logger
from src.core.redis import get_redis, training_changes_channel

from .realtime import RefreshGate


logger = get_logger(__name__)

router = APIRouter(tags=["training-ws"])

PING_INTERVAL_SECONDS = 30


async def send_refresh(websocket: WebSocket, token: int, event: dict[str, Any] | None) -> None:
    await websocket.send_json({"type": "refresh", "token": token, "event": event})


async def changes_subscriber(websocket: WebSocket, gate: RefreshGate) -> None:
    """Forward change events through the gate until the socket goes away."""
    redis_client = get_redis()
    if not redis_client:
        logger.warning("redis_not_available_for_training_changes")
        return

    pubsub = redis_client.pubsub()
    channel = training_changes_channel()

    try:
        await pubsub.subscribe(channel)
        while True:
            message = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=1.0
            )
            if message and message["type"] == "message":
                try:
                    event = json.loads(message["data"])
                except json.JSONDecodeError:
                    event = None
                token = gate.offer()
                if token is not None:
                    await send_refresh(websocket, token, event)

            await asyncio.sleep(0.1)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("training_changes_subscriber_error", error=str(e))
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.close()


async def handle_client_message(
    websocket: WebSocket, gate: RefreshGate, message: dict[str, Any]
) -> None:
    kind = message.get("type")
    if kind == "editing":
        token = gate.set_editing(bool(message.get("value")))
        if token is not None:
            await send_refresh(websocket, token, None)
    elif kind == "ping":
        await websocket.send_json({"type": "pong"})


@router.websocket("/ws/admin/training")
async def training_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="JWT access token"),
) -> None:
    """Admin dashboard refresh stream.

    Connect with: ws://host/ws/admin/training?token=<jwt_token>

    Messages received:
    - {"type": "refresh", "token": N, "event": {...} | null} - Refetch views;
      drop responses to refreshes older than the latest token
    - {"type": "ping"} - Keep-alive ping (every 30s)

    Messages you can send:
    - {"type": "editing", "value": true|false} - Hold back / release refreshes
    - {"type": "ping"} / {"type": "pong"}
    """
    try:
        user = user_from_token(token)
    except (JWTError, ValueError) as e:
        logger.warning("training_ws_auth_failed", error=str(e))
        await websocket.close(code=4001, reason="Authentication failed")
        return

    if not is_admin(user.role):
        await websocket.close(code=4003, reason="Admin role required")
        return

    await websocket.accept()
    logger.info("training_ws_connected", user_id=str(user.id))

    gate = RefreshGate()
    subscriber_task = asyncio.create_task(changes_subscriber(websocket, gate))

    try:
        await websocket.send_json({"type": "connected", "token": gate.token})
        while True:
            try:
                message = await asyncio.wait_for(
                    websocket.receive_json(), timeout=PING_INTERVAL_SECONDS
                )
            except TimeoutError:
                await websocket.send_json({"type": "ping"})
                continue
            await handle_client_message(websocket, gate, message)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("training_ws_error", user_id=str(user.id), error=str(e))
    finally:
        if not subscriber_task.done():
            subscriber_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await subscriber_task
        logger.info("training_ws_disconnected", user_id=str(user.id))
