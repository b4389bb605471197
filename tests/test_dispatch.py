"""Tests for the background task dispatcher."""

import asyncio
import logging

import pytest

from app.vid.dispatch import BackgroundDispatcher, get_dispatcher, reset_dispatcher


class TestBackgroundDispatcher:
    """Test fire-and-forget task handling."""

    @pytest.mark.asyncio
    async def test_spawn_runs_without_awaiting(self):
        dispatcher = BackgroundDispatcher()
        started = asyncio.Event()
        release = asyncio.Event()

        async def job():
            started.set()
            await release.wait()

        dispatcher.spawn(job(), name="job")
        await started.wait()
        assert dispatcher.pending == 1

        release.set()
        await dispatcher.drain()
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        dispatcher = BackgroundDispatcher()

        async def boom():
            raise RuntimeError("downstream broke")

        with caplog.at_level(logging.ERROR, logger="app.vid.dispatch"):
            dispatcher.spawn(boom(), name="boom")
            await dispatcher.drain()

        assert "Background task 'boom' failed: downstream broke" in caplog.text
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_drain_waits_for_tasks_spawned_by_tasks(self):
        dispatcher = BackgroundDispatcher()
        done = []

        async def child():
            await asyncio.sleep(0)
            done.append("child")

        async def parent():
            await asyncio.sleep(0)
            dispatcher.spawn(child(), name="child")
            done.append("parent")

        dispatcher.spawn(parent(), name="parent")
        await dispatcher.drain()

        assert done == ["parent", "child"]


class TestDispatcherSingleton:
    """Test module singleton lifecycle."""

    def test_get_returns_same_instance(self):
        assert get_dispatcher() is get_dispatcher()

    def test_reset_creates_new_instance(self):
        first = get_dispatcher()
        reset_dispatcher()
        assert get_dispatcher() is not first
