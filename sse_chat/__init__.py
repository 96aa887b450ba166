"""
SSE Chat Server core
Message validation, bounded history and fan-out to live event streams
"""

from .models import ChatMessage, ClientConnection, ConnectionState, encode_sse
from .validators import validate_message, sanitize_html, parse_json_body, ensure_encodable
from .errors import (
    ChatServerError,
    MalformedRequestError,
    ValidationError,
    BroadcastDeliveryError,
    InternalFault
)
from .message_store import MessageStore
from .connection_registry import ConnectionRegistry
from .broadcaster import Broadcaster, BroadcastResult
from .message_handler import MessageHandler
from .stream_session import StreamSession
from .database import MessageDatabase
from .config import ServerConfig
from .constants import *
from .logger import (
    get_logger,
    set_log_level,
    log_security_event,
    log_connection_event,
    log_message_event,
    log_broadcast_event,
    log_system_event,
    log_performance_event
)

__all__ = [
    'ChatMessage',
    'ClientConnection',
    'ConnectionState',
    'encode_sse',
    'validate_message',
    'sanitize_html',
    'ensure_encodable',
    'parse_json_body',
    'ChatServerError',
    'MalformedRequestError',
    'ValidationError',
    'BroadcastDeliveryError',
    'InternalFault',
    'MessageStore',
    'ConnectionRegistry',
    'Broadcaster',
    'BroadcastResult',
    'MessageHandler',
    'StreamSession',
    'MessageDatabase',
    'ServerConfig',
    'get_logger',
    'set_log_level',
    'log_security_event',
    'log_connection_event',
    'log_message_event',
    'log_broadcast_event',
    'log_system_event',
    'log_performance_event'
]
