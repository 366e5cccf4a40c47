"""WebSocket API for real-time notifications.

Provides:
- WS /ws/notifications - Push of new in-app notifications for the caller
"""

import asyncio
import contextlib
import json

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from jose import JWTError

from src.auth.dependencies import user_from_token
from src.core.logging import get_logger
from src.core.redis import get_redis, notification_channel


logger = get_logger(__name__)

router = APIRouter(tags=["notifications-ws"])

PING_INTERVAL_SECONDS = 30


async def redis_subscriber(user_id: str, websocket: WebSocket) -> None:
    """Subscribe to the user's channel and forward messages to the socket."""
    redis_client = get_redis()
    if not redis_client:
        logger.warning("redis_not_available_for_pubsub", user_id=user_id)
        return

    pubsub = redis_client.pubsub()
    channel = notification_channel(user_id)

    try:
        await pubsub.subscribe(channel)
        logger.info("subscribed_to_channel", user_id=user_id, channel=channel)

        while True:
            message = await pubsub.get_message(
                ignore_subscribe_messages=True, timeout=1.0
            )
            if message and message["type"] == "message":
                try:
                    await websocket.send_json(json.loads(message["data"]))
                except json.JSONDecodeError:
                    logger.warning("notification_message_invalid", user_id=user_id)

            await asyncio.sleep(0.1)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("redis_subscriber_error", user_id=user_id, error=str(e))
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.close()
        logger.info("unsubscribed_from_channel", user_id=user_id, channel=channel)


@router.websocket("/ws/notifications")
async def notifications_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="JWT access token"),
) -> None:
    """WebSocket endpoint for real-time notifications.

    Connect with: ws://host/ws/notifications?token=<jwt_token>

    Messages received:
    - {"type": "notification", "data": {...}} - New notification
    - {"type": "ping"} - Keep-alive ping (every 30s)

    Messages you can send:
    - {"type": "ping"} / {"type": "pong"}
    """
    try:
        user = user_from_token(token)
    except (JWTError, ValueError) as e:
        logger.warning("websocket_auth_failed", error=str(e))
        await websocket.close(code=4001, reason="Authentication failed")
        return

    user_id = str(user.id)
    await websocket.accept()
    logger.info("websocket_connected", user_id=user_id)

    subscriber_task = asyncio.create_task(redis_subscriber(user_id, websocket))

    try:
        await websocket.send_json({"type": "connected", "user_id": user_id})

        while True:
            try:
                message = await asyncio.wait_for(
                    websocket.receive_json(), timeout=PING_INTERVAL_SECONDS
                )
            except TimeoutError:
                await websocket.send_json({"type": "ping"})
                continue

            if message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("websocket_error", user_id=user_id, error=str(e))
    finally:
        if not subscriber_task.done():
            subscriber_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await subscriber_task
        logger.info("websocket_disconnected", user_id=user_id)
