"""
Bounded in-memory message history
"""

import asyncio
import dataclasses
from collections import deque
from typing import Deque, Iterable, List, Optional

from .constants import MAX_HISTORY_MESSAGES
from .logger import get_logger
from .models import ChatMessage

logger = get_logger()


class MessageStore:
    """Acceptance-ordered message log that evicts its oldest entries first"""

    def __init__(self, capacity: int = MAX_HISTORY_MESSAGES):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._messages: Deque[ChatMessage] = deque()
        self._lock = asyncio.Lock()
        self._evicted = 0

    async def append(self, message: ChatMessage) -> ChatMessage:
        """
        Append a message, evicting the oldest entries past capacity

        Append, eviction and timestamp ordering happen as one step under the
        store lock. A timestamp earlier than the newest stored one is raised
        to it so that timestamps never decrease in store order.

        Args:
            message: Accepted message

        Returns:
            The message as stored
        """
        async with self._lock:
            if self._messages and message.timestamp < self._messages[-1].timestamp:
                message = dataclasses.replace(message, timestamp=self._messages[-1].timestamp)

            self._messages.append(message)

            evicted = 0
            while len(self._messages) > self.capacity:
                self._messages.popleft()
                evicted += 1

        if evicted:
            self._evicted += evicted
            logger.debug(f"Message history trimmed to {self.capacity} messages")

        return message

    async def load(self, messages: Iterable[ChatMessage]) -> int:
        """
        Replace the history with previously persisted messages, oldest first

        Returns:
            Number of messages kept
        """
        async with self._lock:
            self._messages.clear()
            for message in messages:
                self._messages.append(message)
                if len(self._messages) > self.capacity:
                    self._messages.popleft()
            return len(self._messages)

    async def recent(self, limit: Optional[int] = None) -> List[ChatMessage]:
        """
        Get the newest messages in acceptance order

        Args:
            limit: Maximum number of messages, all when None
        """
        async with self._lock:
            messages = list(self._messages)
        if limit is None:
            return messages
        if limit <= 0:
            return []
        return messages[-limit:]

    def __len__(self) -> int:
        return len(self._messages)

    def stats(self) -> dict:
        return {
            "stored_messages": len(self._messages),
            "capacity": self.capacity,
            "evicted_messages": self._evicted,
        }
