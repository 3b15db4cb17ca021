from __future__ import annotations

import asyncio
import itertools
import threading
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

Message = dict[str, Any]


class Connection:
    """Outbound side of one connected client.

    Messages are queued on the event loop that owns the socket, so
    ``deliver`` may be called from request worker threads.
    """

    def __init__(self, connection_id: str, loop: asyncio.AbstractEventLoop) -> None:
        self.id = connection_id
        self._loop = loop
        self._queue: asyncio.Queue[Message | None] = asyncio.Queue()

    def deliver(self, message: Message) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, message)

    def close(self) -> None:
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)

    async def next_message(self) -> Message | None:
        """Wait for the next queued message; ``None`` means the connection was closed."""
        return await self._queue.get()


class ChannelRegistry:
    """Live connections and their event-channel subscriptions for this process.

    Every connection implicitly belongs to the global channel; event-scoped
    channels are joined and left explicitly.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._connections: dict[str, Connection] = {}
        self._channels: dict[str, set[str]] = {}
        self._closed = False

    def connect(self, loop: asyncio.AbstractEventLoop) -> Connection:
        with self._lock:
            if self._closed:
                raise RuntimeError("channel registry is closed")
            connection = Connection(f"conn-{next(self._ids)}", loop)
            self._connections[connection.id] = connection
        logger.info("realtime_connected", connection_id=connection.id)
        return connection

    def disconnect(self, connection_id: str) -> None:
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            for channel in list(self._channels):
                members = self._channels[channel]
                members.discard(connection_id)
                if not members:
                    del self._channels[channel]
        if connection is not None:
            logger.info("realtime_disconnected", connection_id=connection_id)

    def subscribe(self, connection_id: str, channel: str) -> None:
        with self._lock:
            if connection_id not in self._connections:
                raise KeyError(connection_id)
            self._channels.setdefault(channel, set()).add(connection_id)
        logger.info("realtime_subscribed", connection_id=connection_id, channel=channel)

    def unsubscribe(self, connection_id: str, channel: str) -> None:
        with self._lock:
            members = self._channels.get(channel)
            if members is None:
                return
            members.discard(connection_id)
            if not members:
                del self._channels[channel]
        logger.info("realtime_unsubscribed", connection_id=connection_id, channel=channel)

    def channels_for(self, connection_id: str) -> set[str]:
        with self._lock:
            return {name for name, members in self._channels.items() if connection_id in members}

    def members(self, channel: str | None = None) -> set[str]:
        with self._lock:
            if channel is None:
                return set(self._connections)
            return set(self._channels.get(channel, ()))

    def publish(self, message: Message, channel: str | None = None) -> int:
        """Queue ``message`` for every member of ``channel`` (all connections if None).

        Returns the number of connections the message was queued for.
        """
        with self._lock:
            if channel is None:
                targets = list(self._connections.values())
            else:
                targets = [
                    self._connections[cid]
                    for cid in self._channels.get(channel, ())
                    if cid in self._connections
                ]

        delivered = 0
        for connection in targets:
            try:
                connection.deliver(message)
            except RuntimeError:
                # Loop already closed; the socket is going away.
                logger.warning("realtime_deliver_failed", connection_id=connection.id)
                continue
            delivered += 1
        return delivered

    def close(self) -> None:
        with self._lock:
            self._closed = True
            connections = list(self._connections.values())
            self._connections.clear()
            self._channels.clear()
        for connection in connections:
            try:
                connection.close()
            except RuntimeError:
                continue
        logger.info("realtime_registry_closed", dropped=len(connections))
