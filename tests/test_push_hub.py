"""
tests/test_push_hub.py — Live Connection Registry Tests
========================================================
Registration, multi-connection fan-out, pruning, keep-alive, cleanup on
disconnect, and the SSE frame format.
"""

from __future__ import annotations

import asyncio
import json

from quorum.constants import EVENT_CONNECTED, EVENT_UNREAD_COUNT
from quorum.services.push_hub import (
    HEARTBEAT_FRAME,
    Connection,
    ConnectionRegistry,
    format_event,
)


def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def drain(conn: Connection) -> list[str]:
    """Pull every frame currently queued on *conn* without awaiting."""
    frames = []
    while not conn._queue.empty():
        frame = conn._queue.get_nowait()
        if frame is not None:
            frames.append(frame)
    return frames


def parse(frame: str) -> tuple[str, dict]:
    event_line, data_line = frame.strip().split("\n")
    return event_line.removeprefix("event: "), json.loads(data_line.removeprefix("data: "))


class TestFormat:
    def test_event_frame(self):
        assert format_event("unread_count", {"count": 3}) == (
            'event: unread_count\ndata: {"count": 3}\n\n'
        )


class TestRegister:
    def test_initial_frames(self):
        registry = ConnectionRegistry()
        conn = registry.register(7, unread_count=4)
        frames = [parse(f) for f in drain(conn)]
        assert frames[0][0] == EVENT_CONNECTED
        assert frames[0][1]["userId"] == 7
        assert frames[1] == (EVENT_UNREAD_COUNT, {"count": 4})

    def test_without_count_only_connected(self):
        registry = ConnectionRegistry()
        conn = registry.register(7)
        assert [parse(f)[0] for f in drain(conn)] == [EVENT_CONNECTED]

    def test_counts(self):
        registry = ConnectionRegistry()
        registry.register(1)
        registry.register(1)
        registry.register(2)
        assert registry.connection_count(1) == 2
        assert registry.connection_count(3) == 0
        assert registry.total_connections() == 3
        assert sorted(registry.connected_users()) == [1, 2]


class TestBroadcast:
    def test_reaches_every_connection(self):
        registry = ConnectionRegistry()
        tabs = [registry.register(1), registry.register(1)]
        other = registry.register(2)
        for c in (*tabs, other):
            drain(c)

        assert registry.broadcast(1, "unread_count", {"count": 2}) == 2
        for c in tabs:
            assert [parse(f) for f in drain(c)] == [("unread_count", {"count": 2})]
        assert drain(other) == []

    def test_no_connections_is_noop(self):
        assert ConnectionRegistry().broadcast(42, "unread_count", {"count": 1}) == 0

    def test_closed_connection_pruned_others_delivered(self):
        registry = ConnectionRegistry()
        dead, alive = registry.register(1), registry.register(1)
        dead.close()

        assert registry.broadcast(1, "unread_count", {"count": 5}) == 1
        assert registry.connection_count(1) == 1
        assert parse(drain(alive)[-1]) == ("unread_count", {"count": 5})

    def test_full_queue_counts_as_dead(self):
        registry = ConnectionRegistry(queue_size=2)
        conn = registry.register(1, unread_count=0)   # fills both slots
        assert registry.broadcast(1, "unread_count", {"count": 1}) == 0
        assert registry.connection_count(1) == 0
        assert conn.closed

    def test_order_preserved_per_connection(self):
        registry = ConnectionRegistry()
        conn = registry.register(1)
        drain(conn)
        registry.broadcast(1, "unread_count", {"count": 1})
        registry.broadcast(1, "new_notification", {"type": "answer_added"})
        assert [parse(f)[0] for f in drain(conn)] == ["unread_count", "new_notification"]


class TestLifecycle:
    def test_unregister_drops_empty_entry(self):
        registry = ConnectionRegistry()
        a, b = registry.register(1), registry.register(1)
        registry.unregister(a)
        assert registry.connected_users() == [1]
        registry.unregister(b)
        assert registry.connected_users() == []
        registry.unregister(b)   # idempotent

    def test_heartbeat_prunes_dead(self):
        registry = ConnectionRegistry()
        alive, dead = registry.register(1), registry.register(2)
        drain(alive)
        dead.close()
        assert registry.heartbeat_once() == 1
        assert drain(alive) == [HEARTBEAT_FRAME]
        assert registry.connected_users() == [1]

    def test_stream_yields_then_unregisters_on_close(self):
        registry = ConnectionRegistry()

        async def scenario():
            conn = registry.register(9, unread_count=1)
            registry.broadcast(9, "unread_count", {"count": 2})
            conn.close()
            return [frame async for frame in registry.stream(conn)]

        frames = run_async(scenario())
        assert [parse(f)[0] for f in frames] == [
            EVENT_CONNECTED, EVENT_UNREAD_COUNT, EVENT_UNREAD_COUNT,
        ]
        assert registry.connection_count(9) == 0

    def test_stream_cancelled_client_unregisters(self):
        registry = ConnectionRegistry()

        async def scenario():
            conn = registry.register(9)
            gen = registry.stream(conn)
            assert (await gen.__anext__()).startswith("event: connected")
            await gen.aclose()   # what the server does when the client goes away

        run_async(scenario())
        assert registry.connection_count(9) == 0

    def test_keepalive_task_writes_heartbeats(self):
        registry = ConnectionRegistry(heartbeat_seconds=0.01)

        async def scenario():
            conn = registry.register(3)
            drain(conn)
            registry.start()
            await asyncio.sleep(0.05)
            registry.stop()
            await asyncio.sleep(0)
            return drain(conn)

        frames = run_async(scenario())
        assert frames and all(f == HEARTBEAT_FRAME for f in frames)

    def test_close_all(self):
        registry = ConnectionRegistry()
        conns = [registry.register(1), registry.register(2)]
        assert registry.close_all() == 2
        assert registry.total_connections() == 0
        assert all(c.closed for c in conns)
