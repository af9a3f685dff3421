"""
chat-sync — realtime chat synchronization client.

Socket.IO push + REST history, reconciled into one consistent message
sequence per conversation.
"""

from chat_sync.client import AsyncChatClient
from chat_sync.config import ClientConfig, ConnectionPolicy, PollPolicy
from chat_sync.conversations import ConversationsAPI
from chat_sync.errors import ChatSyncError, ConnectionError, FetchError, HistoryLoadError, SendError
from chat_sync.models import C2SEvent, Conversation, Message, MessageCategory, Notification, S2CEvent
from chat_sync.reconciler import ConversationView
from chat_sync.transport.state import ConnectionState, ConnectionStatus

__version__ = "0.1.0"
__all__ = [
    "AsyncChatClient",
    "ClientConfig",
    "ConnectionPolicy",
    "PollPolicy",
    "ConversationsAPI",
    "ChatSyncError",
    "ConnectionError",
    "FetchError",
    "HistoryLoadError",
    "SendError",
    "C2SEvent",
    "S2CEvent",
    "Conversation",
    "Message",
    "MessageCategory",
    "Notification",
    "ConversationView",
    "ConnectionState",
    "ConnectionStatus",
]
