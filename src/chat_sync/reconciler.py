"""
Message reconciler — merges push deliveries and history fetches into one
de-duplicated, arrival-ordered sequence per open conversation.

Rules:
- History (pull) is the authoritative baseline and replaces the sequence
  wholesale. Messages accepted while that fetch was in flight and missing from
  its response are re-appended after it, in arrival order.
- Push messages are accepted only for open conversations and only once per id.
- Sequences are never re-sorted by timestamp; accepted messages are never
  mutated or removed.
- A history response for a conversation that was closed (or re-opened, or
  superseded by a newer fetch) after the request started is discarded.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from chat_sync.broadcast import DEFAULT_QUEUE_SIZE, Broadcast, Subscription
from chat_sync.errors import ChatSyncError, HistoryLoadError
from chat_sync.models.message import Message

FetchHistory = Callable[[str], Awaitable[list[Message]]]
AcceptListener = Callable[[str, tuple[Message, ...]], Any]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingMessage:
    """Optimistic local entry shown until the send round-trip returns."""

    conversation_id: str
    text: str
    local_id: str = field(default_factory=lambda: f"local-{uuid.uuid4()}")
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass(frozen=True)
class ConversationView:
    conversation_id: str
    messages: tuple[Message, ...] = ()
    pending: tuple[PendingMessage, ...] = ()
    loading: bool = False
    loaded: bool = False
    error: Optional[str] = None

    @property
    def message_ids(self) -> list[str]:
        return [m.id for m in self.messages]


class _ConversationState:
    __slots__ = (
        "conversation_id", "messages", "seen", "pending", "loaded", "error",
        "load_seq", "applied_seq", "in_flight", "updates",
    )

    def __init__(self, conversation_id: str, queue_size: int):
        self.conversation_id = conversation_id
        self.messages: list[Message] = []
        self.seen: set[str] = set()
        self.pending: list[PendingMessage] = []
        self.loaded = False
        self.error: Optional[str] = None
        self.load_seq = 0
        self.applied_seq = 0
        # load token -> messages accepted while that fetch was outstanding
        self.in_flight: dict[int, list[Message]] = {}
        self.updates: Broadcast[ConversationView] = Broadcast(f"conversation:{conversation_id}", queue_size)

    def snapshot(self) -> ConversationView:
        return ConversationView(
            conversation_id=self.conversation_id,
            messages=tuple(self.messages),
            pending=tuple(self.pending),
            loading=bool(self.in_flight),
            loaded=self.loaded,
            error=self.error,
        )


class MessageReconciler:
    def __init__(self, fetch_history: FetchHistory, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._fetch_history = fetch_history
        self._queue_size = queue_size
        self._states: dict[str, _ConversationState] = {}
        self._listeners: list[AcceptListener] = []

    @property
    def open_conversations(self) -> list[str]:
        return list(self._states)

    def is_open(self, conversation_id: str) -> bool:
        return conversation_id in self._states

    def open(self, conversation_id: str) -> ConversationView:
        state = self._states.get(conversation_id)
        if state is None:
            state = self._states[conversation_id] = _ConversationState(conversation_id, self._queue_size)
        return state.snapshot()

    def close(self, conversation_id: str) -> None:
        """Stop tracking; any history fetch still outstanding for it becomes stale."""
        state = self._states.pop(conversation_id, None)
        if state is not None:
            state.updates.close()

    def view(self, conversation_id: str) -> ConversationView:
        state = self._states.get(conversation_id)
        if state is None:
            return ConversationView(conversation_id=conversation_id)
        return state.snapshot()

    def watch(self, conversation_id: str) -> Subscription[ConversationView]:
        """Subscribe to snapshots published after every change to an open conversation."""
        state = self._states.get(conversation_id)
        if state is None:
            raise ChatSyncError("conversation_not_open", f"Conversation {conversation_id} is not open")
        return state.updates.subscribe()

    def add_listener(self, listener: AcceptListener) -> Callable[[], None]:
        """Called with (conversation_id, newly accepted messages) after each accepting change."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    async def load_history(self, conversation_id: str) -> Optional[tuple[Message, ...]]:
        """Fetch history and make it the conversation's baseline.

        Returns the new visible sequence, or None if the response arrived for a
        conversation that is no longer open (or was superseded). Raises
        HistoryLoadError on failure, leaving the previous sequence in place.
        """
        state = self._states.get(conversation_id)
        if state is None:
            logger.debug(f"Skipping history load for closed conversation {conversation_id}")
            return None

        state.load_seq += 1
        token = state.load_seq
        state.in_flight[token] = []
        self._publish(state)

        try:
            history = await self._fetch_history(conversation_id)
        except asyncio.CancelledError:
            state.in_flight.pop(token, None)
            if self._states.get(conversation_id) is state:
                self._publish(state)
            raise
        except Exception as e:
            state.in_flight.pop(token, None)
            if self._states.get(conversation_id) is not state:
                logger.debug(f"Discarding failed history load for closed conversation {conversation_id}: {e}")
                return None
            state.error = str(e) or type(e).__name__
            self._publish(state)
            raise HistoryLoadError(conversation_id, f"Failed to load history for {conversation_id}: {e}") from e

        arrivals = state.in_flight.pop(token, [])
        if self._states.get(conversation_id) is not state:
            logger.debug(f"Discarding stale history response for {conversation_id}")
            return None
        if token < state.applied_seq:
            logger.debug(f"Discarding history response for {conversation_id} superseded by a newer load")
            self._publish(state)
            return None

        previously_seen = state.seen
        messages: list[Message] = []
        seen: set[str] = set()
        for message in [*history, *arrivals]:
            if message.id in seen:
                continue
            seen.add(message.id)
            messages.append(message)

        state.messages = messages
        state.seen = seen
        state.loaded = True
        state.error = None
        state.applied_seq = token
        self._publish(state)

        gained = tuple(m for m in messages if m.id not in previously_seen)
        if gained:
            self._notify(conversation_id, gained)
        return tuple(messages)

    def on_push_message(self, message: Message) -> bool:
        """Accept a pushed message. Returns False if it was discarded."""
        state = self._states.get(message.conversation_id)
        if state is None:
            logger.debug(f"Discarding push {message.id} for inactive conversation {message.conversation_id}")
            return False
        return self._accept(state, message)

    def add_local(self, message: Message) -> bool:
        """Accept a message returned by the send API; a push echo of it is then a duplicate."""
        state = self._states.get(message.conversation_id)
        if state is None:
            return False
        return self._accept(state, message)

    def add_pending(self, conversation_id: str, text: str) -> PendingMessage:
        pending = PendingMessage(conversation_id=conversation_id, text=text)
        state = self._states.get(conversation_id)
        if state is not None:
            state.pending.append(pending)
            self._publish(state)
        return pending

    def resolve_pending(self, pending: PendingMessage, message: Message) -> bool:
        """Replace an optimistic entry with the server's message. Returns True if newly accepted."""
        state = self._states.get(pending.conversation_id)
        if state is None:
            return False
        if pending in state.pending:
            state.pending.remove(pending)
        if self.add_local(message):
            return True
        self._publish(state)
        return False

    def drop_pending(self, pending: PendingMessage) -> None:
        state = self._states.get(pending.conversation_id)
        if state is not None and pending in state.pending:
            state.pending.remove(pending)
            self._publish(state)

    def _accept(self, state: _ConversationState, message: Message) -> bool:
        if message.id in state.seen:
            logger.debug(f"Discarding duplicate message {message.id} in {state.conversation_id}")
            return False
        state.seen.add(message.id)
        state.messages.append(message)
        for arrivals in state.in_flight.values():
            arrivals.append(message)
        self._publish(state)
        self._notify(state.conversation_id, (message,))
        return True

    def _publish(self, state: _ConversationState) -> None:
        state.updates.publish(state.snapshot())

    def _notify(self, conversation_id: str, gained: tuple[Message, ...]) -> None:
        for listener in list(self._listeners):
            try:
                listener(conversation_id, gained)
            except Exception:
                logger.exception(f"Reconciler listener failed for {conversation_id}")
