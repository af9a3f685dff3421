from chat_sync.models.message import Author, Message, MessageCategory
from chat_sync.models.conversation import Conversation
from chat_sync.models.notification import Notification
from chat_sync.models.events import C2SEvent, S2CEvent

__all__ = [
    "Author",
    "Message",
    "MessageCategory",
    "Conversation",
    "Notification",
    "C2SEvent",
    "S2CEvent",
]
