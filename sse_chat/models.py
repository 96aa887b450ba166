"""
Data models for the SSE Chat Server
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .constants import STREAM_BUFFER_SIZE
from .errors import BroadcastDeliveryError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix"""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def encode_sse(data: Dict[str, Any]) -> str:
    """Encode a payload as a single `data:` frame terminated by a blank line"""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


@dataclass(frozen=True)
class ChatMessage:
    """Accepted chat message; username and message are already HTML-escaped"""
    username: str
    message: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "username": self.username,
            "message": self.message,
            "timestamp": format_timestamp(self.timestamp),
        }

    def to_frame(self) -> str:
        return encode_sse({"type": "message", "data": self.to_dict()})


class ConnectionState(str, Enum):
    OPENING = "opening"
    OPEN = "open"
    CLOSED = "closed"


class ClientConnection:
    """
    One live stream subscriber

    Frames are written into a bounded buffer which the streaming response
    drains. Writes never block: a full buffer or a closed connection fails
    the write immediately.
    """

    def __init__(self, ip_address: str = "unknown", buffer_size: int = STREAM_BUFFER_SIZE):
        self.client_id = str(uuid.uuid4())
        self.ip_address = ip_address
        self.connected_at = utc_now()
        self.state = ConnectionState.OPENING
        self._buffer: "asyncio.Queue[Optional[str]]" = asyncio.Queue(maxsize=buffer_size)

    def mark_open(self):
        if self.state is ConnectionState.OPENING:
            self.state = ConnectionState.OPEN

    def is_writable(self) -> bool:
        """Liveness predicate checked before every write"""
        return self.state is ConnectionState.OPEN

    def write(self, frame: str):
        """
        Queue one encoded frame for delivery

        Raises:
            BroadcastDeliveryError: Connection is not writable or its buffer is full
        """
        if not self.is_writable():
            raise BroadcastDeliveryError(self.client_id, "connection not writable")
        try:
            self._buffer.put_nowait(frame)
        except asyncio.QueueFull:
            raise BroadcastDeliveryError(self.client_id, "outbound buffer full") from None

    async def next_frame(self) -> Optional[str]:
        """Wait for the next frame; None means the connection was closed"""
        if self.state is ConnectionState.CLOSED and self._buffer.empty():
            return None
        return await self._buffer.get()

    def close(self):
        """Move to CLOSED and wake a reader blocked in next_frame()"""
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        try:
            self._buffer.put_nowait(None)
        except asyncio.QueueFull:
            # reader drains the backlog and then sees the CLOSED state
            pass

    @property
    def pending(self) -> int:
        return self._buffer.qsize()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "ip_address": self.ip_address,
            "connected_at": format_timestamp(self.connected_at),
            "state": self.state.value,
            "pending": self.pending,
        }
