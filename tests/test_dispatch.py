"""
tests/test_dispatch.py — Background Side-Effect Dispatcher
===========================================================
"""

from __future__ import annotations

import asyncio
import logging

from quorum.services.dispatch import TaskDispatcher


def run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestTaskDispatcher:
    def test_spawn_returns_before_completion(self):
        dispatcher = TaskDispatcher()
        done = []

        async def side_effect():
            await asyncio.sleep(0.01)
            done.append(True)

        async def scenario():
            dispatcher.spawn(side_effect(), name="slow")
            assert done == []
            assert dispatcher.pending == 1
            await dispatcher.drain()

        run_async(scenario())
        assert done == [True]
        assert dispatcher.pending == 0

    def test_failure_is_logged_not_raised(self, caplog):
        dispatcher = TaskDispatcher()

        async def broken():
            raise RuntimeError("ledger unavailable")

        async def scenario():
            dispatcher.spawn(broken(), name="rep-vote-1-2")
            await dispatcher.drain()
            await asyncio.sleep(0)

        with caplog.at_level(logging.ERROR, logger="quorum.services.dispatch"):
            run_async(scenario())
        assert "rep-vote-1-2" in caplog.text
        assert dispatcher.pending == 0

    def test_drain_waits_for_nested_spawns(self):
        dispatcher = TaskDispatcher()
        order = []

        async def child():
            order.append("child")

        async def parent():
            order.append("parent")
            dispatcher.spawn(child(), name="child")

        async def scenario():
            dispatcher.spawn(parent(), name="parent")
            await dispatcher.drain()

        run_async(scenario())
        assert order == ["parent", "child"]

    def test_cancel_all(self):
        dispatcher = TaskDispatcher()

        async def forever():
            await asyncio.sleep(3600)

        async def scenario():
            task = dispatcher.spawn(forever(), name="forever")
            await asyncio.sleep(0)
            await dispatcher.cancel_all()
            return task

        task = run_async(scenario())
        assert task.cancelled()
        assert dispatcher.pending == 0
