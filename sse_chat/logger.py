"""
Logging configuration for the SSE Chat Server
"""

import logging
import re
import sys
from typing import Optional

from .constants import LOG_LEVEL

LOGGER_NAME = "sse_chat"
_SECRET_RE = re.compile(r"(password|token)=\S+")


class SecureFormatter(logging.Formatter):
    """Formatter that masks credentials which end up in log lines"""

    def format(self, record):
        return _SECRET_RE.sub(r"\1=***", super().format(record))


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """
    Get the server logger, attaching a stdout handler on first use

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(SecureFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        logger.addHandler(handler)
        logger.setLevel(LOG_LEVEL)
        logger.propagate = False

    return logger


def set_log_level(level: str):
    """Apply a configured level name (DEBUG, INFO, ...) to the server logger"""
    get_logger().setLevel(level.upper())


def log_security_event(event_type: str, details: dict, logger: Optional[logging.Logger] = None):
    """
    Log security-related events with structured data

    Args:
        event_type: Type of security event
        details: Event details
        logger: Logger instance (optional)
    """
    if logger is None:
        logger = get_logger()

    logger.warning(f"SECURITY_EVENT: {event_type} | {details}")


def log_connection_event(client_id: str, action: str, ip_address: str = "unknown", active: Optional[int] = None):
    """
    Log stream connection lifecycle events

    Args:
        client_id: Stream client identifier
        action: Action (connect/disconnect/error/removed)
        ip_address: Client IP address
        active: Number of live connections after the action
    """
    active_info = f" | active={active}" if active is not None else ""
    get_logger().info(f"CONNECTION_EVENT: {action} | client={client_id} | ip={ip_address}{active_info}")


def log_message_event(message_id: str, username: str, action: str, details: str = ""):
    """
    Log message-related events

    Args:
        message_id: Unique message identifier
        username: Sender username
        action: Action (accepted/rejected/stored/persisted/error)
        details: Additional details
    """
    get_logger().info(f"MESSAGE_EVENT: {action} | id={message_id[:8]}... | user={username[:20]} | {details}")


def log_broadcast_event(message_id: str, success_count: int, failure_count: int, active: int):
    """
    Log the outcome of one broadcast sweep

    Args:
        message_id: Broadcast message identifier
        success_count: Targets that accepted the frame
        failure_count: Targets that failed and were dropped
        active: Live connections left after the sweep
    """
    log_message = (
        f"BROADCAST_EVENT: id={message_id[:8]}... | success={success_count} "
        f"| failed={failure_count} | active={active}"
    )
    if failure_count:
        get_logger().warning(log_message)
    else:
        get_logger().info(log_message)


def log_system_event(event_type: str, details: str, level: str = "info"):
    """
    Log system-level events

    Args:
        event_type: Type of system event
        details: Event details
        level: Log level (info/warning/error)
    """
    logger = get_logger()
    log_message = f"SYSTEM_EVENT: {event_type} | {details}"

    if level == "warning":
        logger.warning(log_message)
    elif level == "error":
        logger.error(log_message)
    else:
        logger.info(log_message)


def log_performance_event(operation: str, duration_ms: float, details: str = ""):
    """
    Log performance-related events

    Args:
        operation: Operation being performed
        duration_ms: Duration in milliseconds
        details: Additional details
    """
    get_logger().debug(f"PERFORMANCE_EVENT: {operation} | duration={duration_ms:.2f}ms | {details}")
