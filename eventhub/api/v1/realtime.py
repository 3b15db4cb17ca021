from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from eventhub.realtime.registry import ChannelRegistry, Connection

router = APIRouter(tags=["realtime"])

logger = structlog.get_logger(__name__)

JOIN_EVENT = "joinEvent"
LEAVE_EVENT = "leaveEvent"


async def _pump(websocket: WebSocket, connection: Connection) -> None:
    while True:
        message = await connection.next_message()
        if message is None:
            await websocket.close(code=1001)
            return
        await websocket.send_json(message)


def _handle_control(registry: ChannelRegistry, connection: Connection, message: Any) -> None:
    if not isinstance(message, dict):
        logger.warning("realtime_bad_message", connection_id=connection.id)
        return

    kind = message.get("type")
    event_id = message.get("eventId")
    if not isinstance(event_id, str) or not event_id:
        logger.warning("realtime_bad_message", connection_id=connection.id, type=kind)
        return

    if kind == JOIN_EVENT:
        registry.subscribe(connection.id, event_id)
    elif kind == LEAVE_EVENT:
        registry.unsubscribe(connection.id, event_id)
    else:
        logger.warning("realtime_unknown_message", connection_id=connection.id, type=kind)


@router.websocket("/ws")
async def events_socket(websocket: WebSocket) -> None:
    registry: ChannelRegistry = websocket.app.state.channels

    # Register before accepting so nothing published after the handshake is missed.
    connection = registry.connect(asyncio.get_running_loop())
    await websocket.accept()
    sender = asyncio.create_task(_pump(websocket, connection))
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            text = frame.get("text")
            if text is None:
                logger.warning("realtime_bad_message", connection_id=connection.id, reason="binary_frame")
                continue
            try:
                message = json.loads(text)
            except ValueError:
                logger.warning("realtime_bad_message", connection_id=connection.id)
                continue
            _handle_control(registry, connection, message)
    except WebSocketDisconnect:
        pass
    finally:
        registry.disconnect(connection.id)
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.warning("realtime_sender_failed", connection_id=connection.id, exc_info=True)
