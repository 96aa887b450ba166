"""
Input validation and HTML escaping for posted chat messages
"""

import json
import re
from typing import Any, Dict, List

from .constants import (
    ERROR_MESSAGES,
    HTML_ESCAPE_MAP,
    MAX_MESSAGE_LENGTH,
    MAX_USERNAME_LENGTH,
    USERNAME_PATTERN,
)
from .errors import MalformedRequestError
from .logger import get_logger

logger = get_logger()

_ESCAPE_RE = re.compile('[' + re.escape(''.join(HTML_ESCAPE_MAP)) + ']')
_USERNAME_RE = re.compile(USERNAME_PATTERN)


def sanitize_html(text: str) -> str:
    """
    Escape the six HTML-significant characters & < > " ' /

    Every other character is left untouched; no trimming or truncation.

    Args:
        text: Raw text

    Returns:
        Text safe for embedding in an HTML display context
    """
    return _ESCAPE_RE.sub(lambda match: HTML_ESCAPE_MAP[match.group(0)], text)


def _validate_username(username: Any) -> List[str]:
    if username is None:
        return [ERROR_MESSAGES["username_required"]]
    if not isinstance(username, str):
        return [ERROR_MESSAGES["username_type"]]

    trimmed = username.strip()
    if len(trimmed) == 0:
        return [ERROR_MESSAGES["username_empty"]]
    if len(trimmed) > MAX_USERNAME_LENGTH:
        return [ERROR_MESSAGES["username_length"]]
    if not _USERNAME_RE.match(trimmed):
        return [ERROR_MESSAGES["username_chars"]]
    return []


def _validate_body(message: Any) -> List[str]:
    if message is None:
        return [ERROR_MESSAGES["message_required"]]
    if not isinstance(message, str):
        return [ERROR_MESSAGES["message_type"]]

    trimmed = message.strip()
    if len(trimmed) == 0:
        return [ERROR_MESSAGES["message_empty"]]
    if len(trimmed) > MAX_MESSAGE_LENGTH:
        return [ERROR_MESSAGES["message_length"]]
    return []


def validate_message(username: Any, message: Any) -> List[str]:
    """
    Validate a candidate (username, message) pair

    Both fields are checked independently and every violated field is
    reported. Length limits apply to the trimmed strings.

    Args:
        username: Author display name, None when missing
        message: Message body, None when missing

    Returns:
        List of human-readable errors, empty when the pair is valid
    """
    return _validate_username(username) + _validate_body(message)


def ensure_encodable(payload: Any) -> None:
    """
    Reject payloads holding text that cannot be written back out as UTF-8

    JSON escapes can smuggle in lone surrogates, which json.loads accepts
    but no stream or response can encode.

    Raises:
        MalformedRequestError: Payload contains unencodable text
    """
    try:
        json.dumps(payload, ensure_ascii=False).encode("utf-8")
    except UnicodeEncodeError as e:
        logger.warning(f"Rejected payload with unencodable text: {e.reason}")
        raise MalformedRequestError(details=["Request body contains invalid Unicode text"]) from e


def parse_json_body(raw: bytes) -> Dict[str, Any]:
    """
    Parse a request body into a message payload

    Args:
        raw: Raw HTTP request body

    Returns:
        Decoded JSON object

    Raises:
        MalformedRequestError: Body is empty, not a JSON object, or holds
            text that cannot be encoded as UTF-8
    """
    if not raw or not raw.strip():
        raise MalformedRequestError(
            ERROR_MESSAGES["body_required"],
            details=["Request body cannot be empty"],
        )

    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"JSON parsing error: {e}")
        raise MalformedRequestError(details=["Request body contains invalid JSON"]) from e

    if not isinstance(payload, dict):
        raise MalformedRequestError(details=["Request body must be a JSON object"])

    ensure_encodable(payload)
    return payload
