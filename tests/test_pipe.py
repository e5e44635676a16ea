"""Tests for the inter-task pipe."""

from __future__ import annotations

import asyncio

import pytest

from discirc.core.errors import PipeClosedError
from discirc.gateway.pipe import Pipe


class TestPipe:
    @pytest.mark.asyncio
    async def test_fifo(self):
        pipe: Pipe[int] = Pipe("test")
        for i in range(5):
            pipe.send(i)
        assert [await pipe.recv() for _ in range(5)] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self):
        pipe: Pipe[int] = Pipe("test")
        pipe.close()
        with pytest.raises(PipeClosedError) as exc_info:
            pipe.send(1)
        assert exc_info.value.code == "pipe_closed"
        assert "test hung up" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_pending_items_survive_close(self):
        pipe: Pipe[str] = Pipe("test")
        pipe.send("a")
        pipe.send("b")
        pipe.close()

        assert await pipe.recv() == "a"
        assert await pipe.recv() == "b"
        with pytest.raises(PipeClosedError):
            await pipe.recv()

    @pytest.mark.asyncio
    async def test_recv_after_close_keeps_raising(self):
        pipe: Pipe[str] = Pipe("test")
        pipe.close()
        for _ in range(3):
            with pytest.raises(PipeClosedError):
                await pipe.recv()

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_consumer(self):
        pipe: Pipe[str] = Pipe("test")
        waiter = asyncio.create_task(pipe.recv())
        await asyncio.sleep(0)

        pipe.close()

        with pytest.raises(PipeClosedError):
            await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        pipe: Pipe[str] = Pipe("test")
        pipe.close()
        pipe.close()
        assert pipe.closed
        assert pipe.qsize() == 1

    @pytest.mark.asyncio
    async def test_async_iteration_ends_on_close(self):
        pipe: Pipe[int] = Pipe("test")
        pipe.send(1)
        pipe.send(2)
        pipe.close()
        assert [i async for i in pipe] == [1, 2]
