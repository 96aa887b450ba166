from __future__ import annotations

import asyncio
import json
from contextlib import suppress

import pytest

from sse_chat.broadcaster import Broadcaster
from sse_chat.connection_registry import ConnectionRegistry
from sse_chat.models import ChatMessage, ConnectionState
from sse_chat.stream_session import StreamSession


def _payload(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


def test_open_registers_and_acknowledges_first() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        session = StreamSession(registry, check_interval=0.05)
        assert session.state is ConnectionState.OPENING

        await session.open()

        assert session.state is ConnectionState.OPEN
        assert await registry.get(session.client_id) is session.connection

        frames = session.frames()
        first = await asyncio.wait_for(frames.__anext__(), timeout=1.0)
        assert _payload(first) == {"type": "connected", "clientId": session.client_id}
        await frames.aclose()

    asyncio.run(scenario())


def test_broadcast_reaches_open_stream() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        session = StreamSession(registry, check_interval=0.05)
        await session.open()
        frames = session.frames()
        await frames.__anext__()

        message = ChatMessage(username="alice", message="hello")
        result = await Broadcaster(registry).broadcast(message)
        frame = await asyncio.wait_for(frames.__anext__(), timeout=1.0)

        assert result.success_count == 1
        assert _payload(frame)["type"] == "message"
        assert _payload(frame)["data"]["id"] == message.id
        await frames.aclose()

    asyncio.run(scenario())


def test_close_ends_stream_and_removes_registration() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        session = StreamSession(registry, check_interval=0.05)
        await session.open()
        frames = session.frames()
        await frames.__anext__()

        await session.close()

        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(frames.__anext__(), timeout=1.0)
        assert session.state is ConnectionState.CLOSED
        assert registry.count() == 0

        await session.close()
        assert registry.count() == 0

    asyncio.run(scenario())


def test_transport_disconnect_closes_session() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        session = StreamSession(registry, check_interval=0.02)
        await session.open()

        async def disconnected() -> bool:
            return True

        frames = session.frames(disconnected)
        await frames.__anext__()
        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(frames.__anext__(), timeout=1.0)

        assert session.state is ConnectionState.CLOSED
        assert await registry.get(session.client_id) is None

    asyncio.run(scenario())


def test_idle_stream_writes_nothing_while_client_connected() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        session = StreamSession(registry, check_interval=0.01)
        await session.open()
        checks = 0

        async def still_connected() -> bool:
            nonlocal checks
            checks += 1
            return False

        frames = session.frames(still_connected)
        await frames.__anext__()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(frames.__anext__(), timeout=0.1)

        assert checks > 0
        assert registry.count() == 0

    asyncio.run(scenario())


def test_cancelled_stream_is_removed() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        session = StreamSession(registry, check_interval=0.05)
        await session.open()
        received = []

        async def consume() -> None:
            async for frame in session.frames():
                received.append(frame)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

        assert len(received) == 1
        assert registry.count() == 0

    asyncio.run(scenario())


def test_reconnect_gets_new_identifier() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        first = StreamSession(registry)
        await first.open()
        await first.close()

        second = StreamSession(registry)
        await second.open()

        assert first.client_id != second.client_id
        assert [c.client_id for c in await registry.list_live()] == [second.client_id]

    asyncio.run(scenario())


def test_failing_transport_probe_closes_session() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        session = StreamSession(registry, check_interval=0.02)
        await session.open()

        async def broken_transport() -> bool:
            raise ConnectionResetError("peer reset")

        frames = session.frames(broken_transport)
        await frames.__anext__()
        with pytest.raises(ConnectionResetError):
            await asyncio.wait_for(frames.__anext__(), timeout=1.0)

        assert session.state is ConnectionState.CLOSED
        assert registry.count() == 0

    asyncio.run(scenario())


def test_write_error_in_consumer_closes_session() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        session = StreamSession(registry, check_interval=0.05)
        await session.open()

        frames = session.frames()
        await frames.__anext__()
        with pytest.raises(OSError):
            await frames.athrow(OSError("broken pipe"))

        assert session.state is ConnectionState.CLOSED
        assert await registry.get(session.client_id) is None

    asyncio.run(scenario())
