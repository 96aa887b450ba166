"""
Error taxonomy for the SSE Chat Server
"""

from typing import Any, Dict, List, Optional


class ChatServerError(Exception):
    """Base error carrying the HTTP status and response body fields"""

    status_code = 500
    error = "Internal server error"
    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None, details: Optional[List[str]] = None):
        self.message = message or self.default_message
        self.details = list(details) if details else []
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class MalformedRequestError(ChatServerError):
    """Request body could not be parsed into a message payload"""

    status_code = 400
    error = "Bad Request"
    default_message = "Invalid JSON format"


class ValidationError(ChatServerError):
    """One or more field rules were violated"""

    status_code = 400
    error = "Validation failed"
    default_message = "Invalid input data"

    def __init__(self, details: List[str]):
        super().__init__(details=details)


class BroadcastDeliveryError(ChatServerError):
    """A frame could not be written to one stream client"""

    def __init__(self, client_id: str, reason: str):
        self.client_id = client_id
        self.reason = reason
        super().__init__(f"Delivery to {client_id} failed: {reason}")


class InternalFault(ChatServerError):
    """Unexpected failure; the response never carries internal detail"""

    default_message = "Failed to process message. Please try again."
