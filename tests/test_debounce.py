"""Tests for the debounced writer."""

import asyncio

import pytest

from directreach.core.debounce import DebouncedWriter


class Recorder:
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    async def __call__(self, key, value):
        if self.fail:
            raise RuntimeError("storage down")
        self.calls.append((key, value))


class TestDebouncedWriter:

    async def test_cache_is_updated_immediately(self):
        writer = DebouncedWriter(Recorder(), delay=10)
        writer.write("a", {"v": 1})
        assert writer.get("a") == {"v": 1}
        assert writer.pending("a")
        await writer.close(flush=False)

    async def test_burst_flushes_last_value_once(self):
        recorder = Recorder()
        writer = DebouncedWriter(recorder, delay=0.05)
        for i in range(5):
            writer.write("a", i)
            await asyncio.sleep(0.01)

        await asyncio.sleep(0.15)
        assert recorder.calls == [("a", 4)]
        assert writer.flush_count == 1
        assert writer.get("a") is None

    async def test_keys_are_independent(self):
        recorder = Recorder()
        writer = DebouncedWriter(recorder, delay=0.02)
        writer.write("a", 1)
        writer.write("b", 2)
        await asyncio.sleep(0.1)
        assert sorted(recorder.calls) == [("a", 1), ("b", 2)]

    async def test_flush_now(self):
        recorder = Recorder()
        writer = DebouncedWriter(recorder, delay=10)
        writer.write("a", 1)
        await writer.flush_now("a")
        assert recorder.calls == [("a", 1)]
        assert not writer.pending("a")

    async def test_close_flushes_everything(self):
        recorder = Recorder()
        writer = DebouncedWriter(recorder, delay=10)
        writer.write("a", 1)
        writer.write("b", 2)
        await writer.close()
        assert sorted(recorder.calls) == [("a", 1), ("b", 2)]

    async def test_failed_background_flush_keeps_the_draft(self):
        writer = DebouncedWriter(Recorder(fail=True), delay=0.01)
        writer.write("a", 1)
        await asyncio.sleep(0.05)
        assert writer.get("a") == 1
        assert writer.flush_count == 0

    async def test_flush_now_raises_storage_errors(self):
        writer = DebouncedWriter(Recorder(fail=True), delay=10)
        writer.write("a", 1)
        with pytest.raises(RuntimeError):
            await writer.flush_now("a")
        assert writer.get("a") == 1
