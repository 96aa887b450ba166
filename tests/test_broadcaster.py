from __future__ import annotations

import asyncio
import json
from typing import List

from sse_chat.broadcaster import Broadcaster
from sse_chat.connection_registry import ConnectionRegistry
from sse_chat.models import ChatMessage, ClientConnection


class RecordingConnection(ClientConnection):
    def __init__(self, fail: bool = False) -> None:
        super().__init__(ip_address="127.0.0.1")
        self.fail = fail
        self.frames: List[str] = []
        self.mark_open()

    def write(self, frame: str) -> None:
        if self.fail:
            raise OSError("broken pipe")
        self.frames.append(frame)


def test_failed_target_is_isolated_and_removed() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        first, second, third = RecordingConnection(), RecordingConnection(fail=True), RecordingConnection()
        for connection in (first, second, third):
            await registry.register(connection)

        result = await Broadcaster(registry).broadcast(ChatMessage(username="alice", message="hi"))

        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.failed_ids == [second.client_id]
        assert len(first.frames) == 1
        assert len(third.frames) == 1
        live_ids = {c.client_id for c in await registry.list_live()}
        assert live_ids == {first.client_id, third.client_id}

    asyncio.run(scenario())


def test_frame_wire_format() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        connection = await registry.register(RecordingConnection())
        message = ChatMessage(username="alice", message="hello")

        await Broadcaster(registry).broadcast(message)

        frame = connection.frames[0]
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        payload = json.loads(frame[len("data: "):])
        assert payload == {
            "type": "message",
            "data": {
                "id": message.id,
                "username": "alice",
                "message": "hello",
                "timestamp": message.to_dict()["timestamp"],
            },
        }
        assert payload["data"]["timestamp"].endswith("Z")

    asyncio.run(scenario())


def test_closed_target_counts_as_failure_without_write() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        live = await registry.register(RecordingConnection())
        stale = await registry.register(RecordingConnection())
        stale.close()

        result = await Broadcaster(registry).broadcast(ChatMessage(username="bob", message="hi"))

        assert (result.success_count, result.failure_count) == (1, 1)
        assert stale.frames == []
        assert await registry.get(stale.client_id) is None
        assert await registry.get(live.client_id) is live

    asyncio.run(scenario())


def test_full_buffer_fails_without_blocking_others() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        slow = ClientConnection(buffer_size=1)
        slow.mark_open()
        slow.write("data: {}\n\n")
        fast = RecordingConnection()
        await registry.register(slow)
        await registry.register(fast)

        result = await asyncio.wait_for(
            Broadcaster(registry).broadcast(ChatMessage(username="carol", message="hi")),
            timeout=1.0,
        )

        assert (result.success_count, result.failure_count) == (1, 1)
        assert len(fast.frames) == 1
        assert registry.count() == 1

    asyncio.run(scenario())


def test_explicit_targets_are_used_instead_of_registry() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        registered = await registry.register(RecordingConnection())
        outsider = RecordingConnection()

        result = await Broadcaster(registry).broadcast(ChatMessage(username="dave", message="hi"), [outsider])

        assert result.success_count == 1
        assert len(outsider.frames) == 1
        assert registered.frames == []

    asyncio.run(scenario())


def test_broadcast_without_targets() -> None:
    async def scenario() -> None:
        result = await Broadcaster(ConnectionRegistry()).broadcast(ChatMessage(username="eve", message="hi"))
        assert (result.success_count, result.failure_count) == (0, 0)

    asyncio.run(scenario())


def test_registry_remove_is_idempotent() -> None:
    async def scenario() -> None:
        registry = ConnectionRegistry()
        connection = await registry.register(RecordingConnection())

        assert await registry.remove(connection.client_id) is True
        assert await registry.remove(connection.client_id) is False
        assert await registry.remove("unknown-id") is False
        assert not connection.is_writable()

    asyncio.run(scenario())
