"""
Room membership — per-conversation subscriptions over the shared channel.

Owns the explicit set of active conversation ids. Every transition into
`connected` re-joins the whole set: membership never survives a reconnect.
"""

import logging

from chat_sync.errors import ConnectionError
from chat_sync.models.events import C2SEvent
from chat_sync.transport.socketio import ChannelConnection
from chat_sync.transport.state import ConnectionStatus

logger = logging.getLogger(__name__)


class RoomMembership:
    def __init__(self, connection: ChannelConnection):
        self._connection = connection
        self._active: set[str] = set()
        self._joined: set[str] = set()
        self._remove_listener = connection.add_state_listener(self._on_state_change)

    @property
    def active(self) -> frozenset[str]:
        return frozenset(self._active)

    def is_joined(self, conversation_id: str) -> bool:
        return conversation_id in self._joined

    async def open(self, conversation_id: str) -> None:
        """Mark a conversation active and join its room (now, or on the next connect)."""
        self._active.add(conversation_id)
        await self.join(conversation_id)

    async def close(self, conversation_id: str) -> None:
        self._active.discard(conversation_id)
        await self.leave(conversation_id)

    async def join(self, conversation_id: str) -> None:
        if not self._connection.connected:
            logger.warning(f"Channel not connected, cannot join chat {conversation_id}")
            return
        if conversation_id in self._joined:
            return
        try:
            await self._connection.emit(C2SEvent.JOIN_CHAT, conversation_id)
        except ConnectionError:
            logger.warning(f"Channel dropped before joining chat {conversation_id}")
            return
        self._joined.add(conversation_id)
        logger.info(f"Joined chat room {conversation_id}")

    async def leave(self, conversation_id: str) -> None:
        if not self._connection.connected:
            logger.warning(f"Channel not connected, cannot leave chat {conversation_id}")
            self._joined.discard(conversation_id)
            return
        if conversation_id not in self._joined:
            return
        self._joined.discard(conversation_id)
        try:
            await self._connection.emit(C2SEvent.LEAVE_CHAT, conversation_id)
        except ConnectionError:
            logger.warning(f"Channel dropped before leaving chat {conversation_id}")
            return
        logger.info(f"Left chat room {conversation_id}")

    async def rejoin_all(self) -> None:
        self._joined.clear()
        for conversation_id in sorted(self._active):
            await self.join(conversation_id)

    def detach(self) -> None:
        self._remove_listener()

    async def _on_state_change(self, old: ConnectionStatus, new: ConnectionStatus) -> None:
        if new.connected and not old.connected:
            await self.rejoin_all()
        elif not new.connected:
            self._joined.clear()
