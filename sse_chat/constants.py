"""
Limits, patterns and defaults for the SSE Chat Server
"""

# Message and history limits
MAX_USERNAME_LENGTH = 50
MAX_MESSAGE_LENGTH = 500
MAX_HISTORY_MESSAGES = 100
DEFAULT_RECENT_LIMIT = 50

# Durable storage
DB_KEEP_MESSAGES = 1000
CLEANUP_INTERVAL_SECONDS = 300

# Stream settings
STREAM_BUFFER_SIZE = 100
DISCONNECT_CHECK_INTERVAL = 15
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Server defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000
LOG_LEVEL = "INFO"
CORS_ORIGINS = ["*"]

# ASCII alphanumerics, Hiragana, Katakana, common CJK ideographs,
# whitespace, hyphen, underscore and period
USERNAME_PATTERN = r'^[a-zA-Z0-9\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF\s\-_\.]+$'

# Characters escaped before a message is stored
HTML_ESCAPE_MAP = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
}

# Validation messages
ERROR_MESSAGES = {
    "username_required": "Username is required",
    "username_type": "Username must be a string",
    "username_empty": "Username cannot be empty",
    "username_length": f"Username must be {MAX_USERNAME_LENGTH} characters or less",
    "username_chars": "Username contains invalid characters",
    "message_required": "Message is required",
    "message_type": "Message must be a string",
    "message_empty": "Message cannot be empty",
    "message_length": f"Message must be {MAX_MESSAGE_LENGTH} characters or less",
    "invalid_json": "Invalid JSON format",
    "body_required": "Request body is required",
}
