"""
Global notification relay.

One process-wide subscription to the channel's push stream, independent of
room membership and of which conversations are open. Every automated message
raises a transient Notification; server `notification:new` events are relayed
as-is. Nothing is acknowledged, retried, queued for later, or de-duplicated.
"""

import asyncio
import logging
from typing import Any, Callable, Iterable, Optional

from chat_sync.broadcast import DEFAULT_QUEUE_SIZE, Broadcast, Subscription
from chat_sync.models.message import Message, MessageCategory
from chat_sync.models.notification import Notification
from chat_sync.transport.socketio import ChannelConnection

NotificationHandler = Callable[[Notification], Any]

logger = logging.getLogger(__name__)


class NotificationRelay:
    def __init__(
        self,
        connection: ChannelConnection,
        *,
        categories: Iterable[MessageCategory] = (MessageCategory.AUTOMATED,),
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self._connection = connection
        self._categories = frozenset(categories)
        self._handlers: list[NotificationHandler] = []
        self._subscriptions: list[Subscription[Any]] = []
        self._tasks: list[asyncio.Task] = []
        self.notifications: Broadcast[Notification] = Broadcast("notifications", queue_size)

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def subscribe(self) -> Subscription[Notification]:
        return self.notifications.subscribe()

    def add_handler(self, handler: NotificationHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def remove() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass
        return remove

    def start(self) -> None:
        """Subscribe to the channel. Idempotent; requires a running event loop."""
        if self._tasks:
            return
        messages = self._connection.messages.subscribe()
        notices = self._connection.server_notices.subscribe()
        self._subscriptions = [messages, notices]
        self._tasks = [
            asyncio.create_task(self._pump(messages, self.handle_message)),
            asyncio.create_task(self._pump(notices, self.handle_server_notice)),
        ]

    async def stop(self) -> None:
        for sub in self._subscriptions:
            sub.close()
        if self._tasks:
            await asyncio.wait(self._tasks)
        self._subscriptions = []
        self._tasks = []

    def handle_message(self, message: Message) -> Optional[Notification]:
        if message.category not in self._categories:
            return None
        notification = Notification(
            kind="automated_reply",
            conversation_id=message.conversation_id,
            message_id=message.id,
            text=message.text,
        )
        self._raise(notification)
        return notification

    def handle_server_notice(self, payload: dict[str, Any]) -> Notification:
        text = payload.get("text") or payload.get("message") or ""
        notification = Notification(
            kind="server",
            conversation_id=payload.get("chatId"),
            message_id=payload.get("messageId"),
            text=str(text),
            payload=payload,
        )
        self._raise(notification)
        return notification

    async def _pump(self, subscription: Subscription[Any], handle: Callable[[Any], Any]) -> None:
        async for item in subscription:
            handle(item)

    def _raise(self, notification: Notification) -> None:
        logger.info(f"Notification ({notification.kind}) for {notification.conversation_id}: {notification.text[:80]}")
        self.notifications.publish(notification)
        for handler in list(self._handlers):
            try:
                handler(notification)
            except Exception:
                logger.exception("Notification handler failed")
