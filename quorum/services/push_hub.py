"""
quorum.services.push_hub — Live Connection Registry
====================================================

Holds every open event stream, grouped by user, and fans events out to
all of a user's connections (several tabs or devices at once).

Each :class:`Connection` owns a bounded ``asyncio.Queue`` of pre-formatted
Server-Sent-Event frames.  Writing to a connection never awaits: a frame is
either queued immediately or the connection is considered dead (closed, or
so far behind that its queue is full) and is pruned from the registry.  The
HTTP layer drains the queue through :meth:`Connection.frames`.

Usage::

    registry = ConnectionRegistry(heartbeat_seconds=30)
    registry.start()                                  # keep-alive task

    conn = registry.register(user_id, unread_count=3)
    return StreamingResponse(registry.stream(conn), media_type="text/event-stream")

    registry.broadcast(user_id, "unread_count", {"count": 4})
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import threading
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from quorum.constants import (
    DEFAULT_HEARTBEAT_SECONDS,
    DEFAULT_STREAM_QUEUE_SIZE,
    EVENT_CONNECTED,
    EVENT_UNREAD_COUNT,
)
from quorum.errors import TransientDeliveryError

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ": heartbeat\n\n"

_ids = itertools.count(1)


def format_event(event: str, data: Any) -> str:
    """Render one SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------
class Connection:
    """One open event stream for one user."""

    def __init__(self, user_id: int, *, queue_size: int = DEFAULT_STREAM_QUEUE_SIZE) -> None:
        self.id = next(_ids)
        self.user_id = user_id
        self.opened_at = datetime.now(UTC)
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _write(self, frame: str) -> None:
        if self._closed:
            raise TransientDeliveryError(f"Connection {self.id} is closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            raise TransientDeliveryError(
                f"Connection {self.id} is not draining (queue full)"
            ) from None

    def send(self, event: str, data: Any) -> None:
        self._write(format_event(event, data))

    def heartbeat(self) -> None:
        self._write(HEARTBEAT_FRAME)

    def close(self) -> None:
        """Mark closed and wake the reader; idempotent."""
        if self._closed:
            return
        self._closed = True
        # Make room for the end-of-stream marker.
        while True:
            try:
                self._queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frames until the connection is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame

    def __repr__(self) -> str:
        return f"<Connection id={self.id} user={self.user_id} closed={self._closed}>"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
class ConnectionRegistry:
    """Thread-safe ``user_id → {Connection}`` map with fan-out helpers.

    Writes to connections happen outside the lock on a snapshot of the
    user's set, so a slow or failing connection never holds up
    registration or removal of others.
    """

    def __init__(
        self,
        heartbeat_seconds: float = DEFAULT_HEARTBEAT_SECONDS,
        queue_size: int = DEFAULT_STREAM_QUEUE_SIZE,
    ) -> None:
        self.heartbeat_seconds = heartbeat_seconds
        self.queue_size = queue_size
        self._connections: dict[int, set[Connection]] = {}
        self._lock = threading.Lock()
        self._keepalive_task: asyncio.Task | None = None

    # -- membership ---------------------------------------------------------
    def register(self, user_id: int, *, unread_count: int | None = None) -> Connection:
        """Open a connection for *user_id* and queue its initial frames.

        The ``connected`` event is always sent; ``unread_count`` is sent
        when the caller supplies the current count so a fresh stream never
        starts from a stale zero.
        """
        conn = Connection(user_id, queue_size=self.queue_size)
        with self._lock:
            self._connections.setdefault(user_id, set()).add(conn)
            total = len(self._connections[user_id])

        conn.send(EVENT_CONNECTED, {
            "userId": user_id,
            "timestamp": conn.opened_at.isoformat(),
        })
        if unread_count is not None:
            conn.send(EVENT_UNREAD_COUNT, {"count": unread_count})

        logger.info(
            "Stream opened for user %s (connection %d, %d open)",
            user_id, conn.id, total,
        )
        return conn

    def unregister(self, conn: Connection) -> None:
        """Remove *conn*; drops the user's entry once its set is empty."""
        conn.close()
        with self._lock:
            conns = self._connections.get(conn.user_id)
            if conns is None or conn not in conns:
                return
            conns.discard(conn)
            remaining = len(conns)
            if not conns:
                del self._connections[conn.user_id]
        logger.info(
            "Stream closed for user %s (connection %d, %d left)",
            conn.user_id, conn.id, remaining,
        )

    def _snapshot(self, user_id: int) -> list[Connection]:
        with self._lock:
            return list(self._connections.get(user_id, ()))

    # -- delivery -----------------------------------------------------------
    def broadcast(self, user_id: int, event: str, data: Any) -> int:
        """Send one event to every connection of *user_id*.

        Returns the number of connections that accepted the frame.  Dead
        connections are pruned; a user with no connections is a no-op.
        """
        delivered = 0
        for conn in self._snapshot(user_id):
            try:
                conn.send(event, data)
                delivered += 1
            except TransientDeliveryError as exc:
                logger.warning(
                    "Pruning connection %d for user %s: %s", conn.id, user_id, exc
                )
                self.unregister(conn)
        return delivered

    def heartbeat_once(self) -> int:
        """Write a keep-alive frame to every connection; return pruned count."""
        with self._lock:
            everyone = [c for conns in self._connections.values() for c in conns]
        pruned = 0
        for conn in everyone:
            try:
                conn.heartbeat()
            except TransientDeliveryError:
                self.unregister(conn)
                pruned += 1
        if pruned:
            logger.info("Keep-alive pruned %d dead connection(s)", pruned)
        return pruned

    async def stream(self, conn: Connection) -> AsyncIterator[str]:
        """Response body generator; unregisters on disconnect or error."""
        try:
            async for frame in conn.frames():
                yield frame
        finally:
            self.unregister(conn)

    # -- introspection ------------------------------------------------------
    def connection_count(self, user_id: int) -> int:
        with self._lock:
            return len(self._connections.get(user_id, ()))

    def total_connections(self) -> int:
        with self._lock:
            return sum(len(conns) for conns in self._connections.values())

    def connected_users(self) -> list[int]:
        with self._lock:
            return list(self._connections)

    def is_connected(self, user_id: int) -> bool:
        return self.connection_count(user_id) > 0

    # -- lifecycle ----------------------------------------------------------
    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Start the keep-alive task."""
        if self._keepalive_task is not None:
            return
        loop = loop or asyncio.get_running_loop()

        async def _keepalive_loop() -> None:
            while True:
                await asyncio.sleep(self.heartbeat_seconds)
                try:
                    self.heartbeat_once()
                except Exception:
                    logger.exception("Keep-alive pass failed")

        self._keepalive_task = loop.create_task(
            _keepalive_loop(), name="stream-keepalive"
        )
        logger.info("Stream keep-alive started (every %.0fs)", self.heartbeat_seconds)

    def stop(self) -> None:
        """Cancel the keep-alive task."""
        if self._keepalive_task:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    def close_all(self) -> int:
        """Close every connection (process shutdown); return how many."""
        with self._lock:
            everyone = [c for conns in self._connections.values() for c in conns]
            self._connections.clear()
        for conn in everyone:
            conn.close()
        if everyone:
            logger.info("Closed %d open stream(s)", len(everyone))
        return len(everyone)
