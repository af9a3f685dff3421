"""
AsyncChatClient — the entry point the view layer drives.

Wires one ChannelConnection to room membership, the message reconciler's
push path and the global notification relay, and arms the fallback poll after
every local send.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from chat_sync.broadcast import Subscription
from chat_sync.config import ClientConfig
from chat_sync.conversations import ConversationsAPI
from chat_sync.errors import HistoryLoadError, SendError
from chat_sync.membership import RoomMembership
from chat_sync.models.message import Message
from chat_sync.models.notification import Notification
from chat_sync.notifications import NotificationHandler, NotificationRelay
from chat_sync.polling import FallbackPollScheduler
from chat_sync.reconciler import ConversationView, MessageReconciler
from chat_sync.transport.http import HttpClient
from chat_sync.transport.socketio import ChannelConnection
from chat_sync.transport.state import ConnectionStatus

logger = logging.getLogger(__name__)


class AsyncChatClient:
    """Realtime chat client.

    Any number of conversations may be open at once; each open conversation
    is joined on the channel, reconciled independently, and re-joined and
    re-fetched after every reconnect. `switch_conversation` gives single-pane
    views the "one open conversation" behaviour on top of that.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        api: Optional[ConversationsAPI] = None,
        connection: Optional[ChannelConnection] = None,
        clock: Callable[[], float] = time.monotonic,
        poll_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or ClientConfig()
        self.http: Optional[HttpClient] = None
        if api is None:
            self.http = HttpClient(base_url=self.config.base_url, token=self.config.token)
            api = ConversationsAPI(self.http)
        self.conversations = api

        self.connection = connection or ChannelConnection(
            self.config.resolved_socket_url,
            policy=self.config.connection,
            socketio_path=self.config.socketio_path,
            transports=self.config.transports,
            auth={"token": self.config.token} if self.config.token else None,
            queue_size=self.config.queue_size,
        )
        self.membership = RoomMembership(self.connection)
        self.reconciler = MessageReconciler(self.conversations.fetch_history, queue_size=self.config.queue_size)
        self.poller = FallbackPollScheduler(
            self.reconciler.load_history, policy=self.config.poll, clock=clock, sleep=poll_sleep,
        )
        self.relay = NotificationRelay(self.connection, queue_size=self.config.queue_size)

        self.reconciler.add_listener(self._on_accepted)
        self.connection.add_state_listener(self._on_state_change)

        self._push_sub: Optional[Subscription[Message]] = None
        self._push_task: Optional[asyncio.Task] = None
        self._backfills: set[asyncio.Task] = set()
        self._has_connected = False

    async def __aenter__(self) -> "AsyncChatClient":
        await self.start()
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.close()

    # ---- lifecycle -----------------------------------------------------------

    async def start(self) -> ConnectionStatus:
        """Start the push path and relay, then connect. Never raises on transport failure."""
        if self._push_task is None:
            self._push_sub = self.connection.messages.subscribe()
            self._push_task = asyncio.create_task(self._pump_push(self._push_sub))
        self.relay.start()
        await self.connection.connect()
        return self.connection.status()

    async def close(self) -> None:
        await self.poller.shutdown()
        for task in list(self._backfills):
            task.cancel()
        if self._backfills:
            await asyncio.wait(self._backfills)
        await self.relay.stop()
        if self._push_sub is not None:
            self._push_sub.close()
        if self._push_task is not None:
            await asyncio.wait({self._push_task})
        self._push_sub = None
        self._push_task = None
        await self.connection.disconnect()
        if self.http is not None:
            await self.http.close()

    def status(self) -> ConnectionStatus:
        return self.connection.status()

    async def reconnect(self) -> ConnectionStatus:
        await self.connection.reconnect()
        return self.connection.status()

    # ---- navigation ----------------------------------------------------------

    async def on_conversation_opened(self, conversation_id: str) -> Optional[tuple[Message, ...]]:
        """Open, join and load a conversation.

        Raises HistoryLoadError if the initial load fails; the conversation
        stays open and `load_history` can be called again to retry.
        """
        self.reconciler.open(conversation_id)
        await self.membership.open(conversation_id)
        return await self.reconciler.load_history(conversation_id)

    async def on_conversation_closed(self, conversation_id: str) -> None:
        self.poller.disarm(conversation_id, "conversation closed")
        self.reconciler.close(conversation_id)
        await self.membership.close(conversation_id)

    async def switch_conversation(self, conversation_id: str) -> Optional[tuple[Message, ...]]:
        """Close every other open conversation, then open this one."""
        others = (set(self.reconciler.open_conversations) | self.membership.active) - {conversation_id}
        for other in sorted(others):
            await self.on_conversation_closed(other)
        return await self.on_conversation_opened(conversation_id)

    async def load_history(self, conversation_id: str) -> Optional[tuple[Message, ...]]:
        """Manual (re)load; this is the retry path after a HistoryLoadError."""
        return await self.reconciler.load_history(conversation_id)

    # ---- messages ------------------------------------------------------------

    async def send_message(self, conversation_id: str, text: str) -> Message:
        """Send over REST (works while the channel is down) and expect an automated reply."""
        pending = self.reconciler.add_pending(conversation_id, text)
        armed_here = self.reconciler.is_open(conversation_id) and not self.poller.is_armed(conversation_id)
        if armed_here:
            self.poller.arm(conversation_id)
        try:
            message = await self.conversations.send_message(conversation_id, text)
        except Exception as e:
            self.reconciler.drop_pending(pending)
            if armed_here:
                self.poller.disarm(conversation_id, "send failed")
            raise SendError(conversation_id, f"Failed to send message to {conversation_id}: {e}") from e
        self.reconciler.resolve_pending(pending, message)
        return message

    def view(self, conversation_id: str) -> ConversationView:
        return self.reconciler.view(conversation_id)

    def watch(self, conversation_id: str) -> Subscription[ConversationView]:
        return self.reconciler.watch(conversation_id)

    # ---- notifications -------------------------------------------------------

    def notifications(self) -> Subscription[Notification]:
        return self.relay.subscribe()

    def add_notification_handler(self, handler: NotificationHandler) -> Callable[[], None]:
        return self.relay.add_handler(handler)

    # ---- internals -----------------------------------------------------------

    async def _pump_push(self, subscription: Subscription[Message]) -> None:
        async for message in subscription:
            self.reconciler.on_push_message(message)

    def _on_accepted(self, conversation_id: str, gained: tuple[Message, ...]) -> None:
        if any(m.is_automated for m in gained) and self.poller.is_armed(conversation_id):
            self.poller.disarm(conversation_id, "automated reply received")

    def _on_state_change(self, old: ConnectionStatus, new: ConnectionStatus) -> None:
        if not new.connected or old.connected:
            return
        if self._has_connected:
            for conversation_id in self.reconciler.open_conversations:
                task = asyncio.create_task(self._backfill(conversation_id))
                self._backfills.add(task)
                task.add_done_callback(self._backfills.discard)
        self._has_connected = True

    async def _backfill(self, conversation_id: str) -> None:
        try:
            await self.reconciler.load_history(conversation_id)
        except HistoryLoadError as e:
            logger.warning(f"History backfill after reconnect failed: {e}")
