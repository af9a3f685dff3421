"""
chat-sync error types.

Transport failures never surface here: they are absorbed by the channel's
retry policy and reported as connection status. Only request/response
failures that the view layer can retry are raised.
"""

from typing import Any, Optional


class ChatSyncError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class ConnectionError(ChatSyncError):
    def __init__(self, message: str):
        super().__init__("connection_error", message)


class FetchError(ChatSyncError):
    def __init__(self, message: str, code: str = "fetch_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class HistoryLoadError(FetchError):
    def __init__(self, conversation_id: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code="history_load_error", details=details)
        self.conversation_id = conversation_id


class SendError(FetchError):
    def __init__(self, conversation_id: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code="send_error", details=details)
        self.conversation_id = conversation_id
