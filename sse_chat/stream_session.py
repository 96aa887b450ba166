"""
Lifecycle of one Server-Sent Events connection
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

from .connection_registry import ConnectionRegistry
from .constants import DISCONNECT_CHECK_INTERVAL, STREAM_BUFFER_SIZE
from .logger import get_logger, log_connection_event
from .models import ClientConnection, ConnectionState, encode_sse

logger = get_logger()


class StreamSession:
    """
    Registers a stream connection and feeds its frames to the response

    OPENING -> OPEN on open(), OPEN -> CLOSED on close(). A closed session is
    never reopened; reconnecting clients get a new session and a new id.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        ip_address: str = "unknown",
        buffer_size: int = STREAM_BUFFER_SIZE,
        check_interval: float = DISCONNECT_CHECK_INTERVAL,
    ):
        self.registry = registry
        self.connection = ClientConnection(ip_address=ip_address, buffer_size=buffer_size)
        self.check_interval = check_interval

    @property
    def client_id(self) -> str:
        return self.connection.client_id

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    async def open(self) -> ClientConnection:
        """
        Register the connection and queue the `connected` acknowledgement

        The acknowledgement is the first frame the client receives.
        """
        self.connection.mark_open()
        await self.registry.register(self.connection)
        try:
            self.connection.write(encode_sse({"type": "connected", "clientId": self.client_id}))
        except Exception as e:
            logger.error(f"Failed to send initial message to client {self.client_id}: {e}")
            await self.close()
            raise
        return self.connection

    async def close(self):
        """Idempotent; removes the connection from the registry"""
        self.connection.close()
        await self.registry.remove(self.client_id)

    async def frames(self, is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None) -> AsyncIterator[str]:
        """
        Yield queued frames until the connection closes

        Waits on the outbound buffer. When idle for check_interval seconds
        it asks is_disconnected() whether the client went away; nothing is
        written to the client on those wake-ups.

        Args:
            is_disconnected: Transport probe, e.g. Request.is_disconnected
        """
        try:
            while True:
                try:
                    frame = await asyncio.wait_for(self.connection.next_frame(), timeout=self.check_interval)
                except asyncio.TimeoutError:
                    if is_disconnected is not None and await is_disconnected():
                        logger.info(f"Client disconnected: {self.client_id}")
                        break
                    continue

                if frame is None:
                    break
                yield frame
        except asyncio.CancelledError:
            logger.info(f"Stream cancelled for client {self.client_id}")
            raise
        except Exception as e:
            log_connection_event(self.client_id, "error", self.connection.ip_address)
            logger.error(f"Stream error for client {self.client_id}: {e}")
            raise
        finally:
            await self.close()
