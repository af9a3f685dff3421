"""
Socket.IO event names exchanged with the chat server.
"""


class C2SEvent:
    """Client → server."""

    JOIN_CHAT = "join:chat"
    LEAVE_CHAT = "leave:chat"


class S2CEvent:
    """Server → client."""

    MESSAGE_NEW = "message:new"
    NOTIFICATION_NEW = "notification:new"

    # Socket.IO lifecycle events, never dispatched as push events
    LIFECYCLE = frozenset({"connect", "disconnect", "connect_error"})
