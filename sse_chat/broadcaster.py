"""
Fan-out of accepted messages to every live stream connection
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .connection_registry import ConnectionRegistry
from .errors import BroadcastDeliveryError
from .logger import get_logger, log_broadcast_event
from .models import ChatMessage, ClientConnection

logger = get_logger()


@dataclass
class BroadcastResult:
    success_count: int = 0
    failure_count: int = 0
    failed_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"success_count": self.success_count, "failure_count": self.failure_count}


class Broadcaster:
    """Writes each message once to every target and drops the ones that fail"""

    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry

    async def broadcast(self, message: ChatMessage, targets: Optional[Sequence[ClientConnection]] = None) -> BroadcastResult:
        """
        Deliver one message to every target

        A failed target never affects the attempts on the others; failed
        targets are removed from the registry once the sweep is complete.

        Args:
            message: Message to deliver
            targets: Connections to write to, a registry snapshot when None

        Returns:
            BroadcastResult with success and failure counts
        """
        if targets is None:
            targets = await self._registry.list_live()

        result = BroadcastResult()
        if not targets:
            logger.debug("No clients connected, skipping broadcast")
            return result

        frame = message.to_frame()

        for target in targets:
            try:
                if not target.is_writable():
                    raise BroadcastDeliveryError(target.client_id, "connection not writable")
                target.write(frame)
                result.success_count += 1
            except Exception as e:
                logger.error(f"Failed to send message to client {target.client_id}: {e}")
                result.failure_count += 1
                result.failed_ids.append(target.client_id)

        for client_id in result.failed_ids:
            await self._registry.remove(client_id)

        log_broadcast_event(message.id, result.success_count, result.failure_count, self._registry.count())
        return result
