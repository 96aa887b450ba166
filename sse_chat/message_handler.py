"""
Ingest pipeline for posted chat messages: validate, escape, store, broadcast
"""

import time
from typing import Any, Dict, Optional

from .broadcaster import Broadcaster, BroadcastResult
from .database import MessageDatabase
from .errors import InternalFault, MalformedRequestError, ValidationError
from .logger import get_logger, log_message_event, log_performance_event, log_security_event
from .message_store import MessageStore
from .models import ChatMessage
from .validators import ensure_encodable, sanitize_html, validate_message

logger = get_logger()


class MessageHandler:
    """Turns accepted posts into stored and broadcast messages"""

    def __init__(self, store: MessageStore, broadcaster: Broadcaster, database: Optional[MessageDatabase] = None):
        self.store = store
        self.broadcaster = broadcaster
        self.database = database
        self._accepted = 0
        self._rejected = 0
        self._delivery_failures = 0

    def create_message(self, username: str, message: str) -> ChatMessage:
        """
        Build a message from a validated pair

        Args:
            username: Validated author
            message: Validated body

        Returns:
            New ChatMessage with trimmed, escaped fields
        """
        return ChatMessage(
            username=sanitize_html(username.strip()),
            message=sanitize_html(message.strip()),
        )

    async def handle_post(self, payload: Optional[Dict[str, Any]]) -> ChatMessage:
        """
        Accept one posted message

        Delivery problems are logged and never fail the call: once stored
        the message counts as accepted.

        Args:
            payload: Decoded request body with `username` and `message`

        Returns:
            The stored message

        Raises:
            MalformedRequestError: Payload is missing, not an object, or not
                encodable as UTF-8
            ValidationError: One or more field rules were violated
            InternalFault: Unexpected failure while storing the message
        """
        start_time = time.perf_counter()

        if not isinstance(payload, dict):
            raise MalformedRequestError(details=["Request body must be a JSON object"])
        ensure_encodable(payload)

        username = payload.get("username")
        message = payload.get("message")
        logger.info(
            f"POST /messages - User: {username[:20] if isinstance(username, str) else username}, "
            f"Message length: {len(message) if isinstance(message, str) else 0}"
        )

        errors = validate_message(username, message)
        if errors:
            self._rejected += 1
            logger.info(f"Validation failed: {errors}")
            raise ValidationError(errors)

        if "<" in message:
            log_security_event("markup_escaped", {"username": username.strip()[:20], "length": len(message)})

        try:
            chat_message = await self.store.append(self.create_message(username, message))
        except Exception as e:
            logger.exception(f"Error storing message: {e}")
            raise InternalFault() from e

        self._accepted += 1
        log_message_event(chat_message.id, chat_message.username, "accepted", f"length={len(chat_message.message)}")

        await self._broadcast(chat_message)
        await self._persist(chat_message)

        log_performance_event("ingest", (time.perf_counter() - start_time) * 1000, f"id={chat_message.id[:8]}")
        return chat_message

    async def _persist(self, chat_message: ChatMessage):
        if self.database is None:
            return
        try:
            await self.database.add_message(chat_message)
        except Exception as e:
            logger.error(f"Failed to persist message {chat_message.id}: {e}")

    async def _broadcast(self, chat_message: ChatMessage) -> Optional[BroadcastResult]:
        try:
            result = await self.broadcaster.broadcast(chat_message)
        except Exception as e:
            logger.exception(f"Failed to broadcast message {chat_message.id}: {e}")
            return None

        if result.failure_count:
            self._delivery_failures += result.failure_count
            logger.warning(f"Failed to send message {chat_message.id} to {result.failure_count} clients")
        return result

    def get_message_stats(self) -> Dict[str, int]:
        return {
            "accepted_messages": self._accepted,
            "rejected_messages": self._rejected,
            "delivery_failures": self._delivery_failures,
            **self.store.stats(),
        }
