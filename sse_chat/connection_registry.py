"""
Registry of live stream connections
"""

import asyncio
from typing import Dict, List, Optional

from .logger import get_logger, log_connection_event
from .models import ClientConnection

logger = get_logger()


class ConnectionRegistry:
    """Keyed set of live stream connections guarded by an asyncio lock"""

    def __init__(self):
        # client_id -> ClientConnection
        self._connections: Dict[str, ClientConnection] = {}
        self._lock = asyncio.Lock()
        self._total_registered = 0

    async def register(self, connection: ClientConnection) -> ClientConnection:
        """
        Add a connection to the registry

        Args:
            connection: Newly opened stream connection

        Returns:
            The registered connection
        """
        async with self._lock:
            self._connections[connection.client_id] = connection
            self._total_registered += 1
            active = len(self._connections)

        log_connection_event(connection.client_id, "connect", connection.ip_address, active)
        return connection

    async def remove(self, client_id: str) -> bool:
        """
        Remove a connection by id; removing an unknown id is a no-op

        Args:
            client_id: Stream client identifier

        Returns:
            True if a connection was removed
        """
        async with self._lock:
            connection = self._connections.pop(client_id, None)
            active = len(self._connections)

        if connection is None:
            return False

        connection.close()
        log_connection_event(client_id, "disconnect", connection.ip_address, active)
        return True

    async def get(self, client_id: str) -> Optional[ClientConnection]:
        async with self._lock:
            return self._connections.get(client_id)

    async def list_live(self) -> List[ClientConnection]:
        """
        Snapshot of the registered connections

        Returns:
            List of ClientConnection objects, safe to iterate without the lock
        """
        async with self._lock:
            return list(self._connections.values())

    def count(self) -> int:
        return len(self._connections)

    async def close_all(self) -> int:
        """Close and drop every connection so their streams finish"""
        async with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()

        for connection in connections:
            connection.close()

        if connections:
            logger.info(f"Closed {len(connections)} stream connections")
        return len(connections)

    def stats(self) -> Dict[str, int]:
        return {
            "active_connections": len(self._connections),
            "total_connections": self._total_registered,
        }
