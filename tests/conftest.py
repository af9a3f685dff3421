"""Shared fakes: an in-memory Socket.IO server, a scripted REST API and a virtual clock."""

import asyncio
from collections import defaultdict, deque
from typing import Any, Optional

import pytest
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from chat_sync.config import ConnectionPolicy
from chat_sync.models.message import Message, MessageCategory
from chat_sync.transport.socketio import ChannelConnection


def make_message(
    message_id: str,
    conversation_id: str = "c1",
    category: MessageCategory = MessageCategory.USER,
    text: str = "",
    created_at: str = "",
) -> Message:
    return Message(
        id=message_id,
        conversation_id=conversation_id,
        category=category,
        text=text or f"text of {message_id}",
        created_at=created_at,
    )


async def settle(rounds: int = 10) -> None:
    """Let queued callbacks and pump tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class VirtualClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


async def sleep_forever(_delay: float) -> None:
    await asyncio.Event().wait()


class FakeSocket:
    """Stands in for socketio.AsyncClient."""

    def __init__(self, server: "FakeServer", **kwargs: Any):
        self.server = server
        self.kwargs = kwargs
        self.handlers: dict[str, Any] = {}
        self.connected = False

    def event(self, handler):
        self.handlers[handler.__name__] = handler
        return handler

    def on(self, event: str, handler=None):
        def register(fn):
            self.handlers[event] = fn
            return fn
        return register(handler) if handler else register

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.server.connect_calls.append({"url": url, **kwargs})
        if self.server.failures > 0:
            self.server.failures -= 1
            raise SocketIOConnectionError("Connection refused by the server")
        self.connected = True

    async def emit(self, event: str, data: Any = None) -> None:
        self.server.emitted.append((event, data))

    async def disconnect(self) -> None:
        if self.connected:
            self.connected = False
            handler = self.handlers.get("disconnect")
            if handler:
                await handler("client disconnect")


class FakeServer:
    def __init__(self, failures: int = 0):
        self.failures = failures
        self.sockets: list[FakeSocket] = []
        self.connect_calls: list[dict[str, Any]] = []
        self.emitted: list[tuple[str, Any]] = []

    def factory(self, **kwargs: Any) -> FakeSocket:
        sock = FakeSocket(self, **kwargs)
        self.sockets.append(sock)
        return sock

    @property
    def current(self) -> FakeSocket:
        return self.sockets[-1]

    async def push(self, event: str, data: Any) -> None:
        await self.current.handlers["*"](event, data)

    async def push_message(self, message: Message) -> None:
        await self.push("message:new", message.to_wire())

    async def drop(self) -> None:
        sock = self.current
        sock.connected = False
        await sock.handlers["disconnect"]("transport close")

    def emitted_events(self, event: str) -> list[Any]:
        return [data for name, data in self.emitted if name == event]


class FakeConversationsAPI:
    def __init__(self) -> None:
        self.histories: dict[str, list[Message]] = defaultdict(list)
        self.responses: dict[str, deque] = defaultdict(deque)
        self.gates: deque[asyncio.Event] = deque()
        self.fetch_calls: list[str] = []
        self.fetch_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.sent: list[Message] = []

    async def fetch_history(self, conversation_id: str) -> list[Message]:
        self.fetch_calls.append(conversation_id)
        gate = self.gates.popleft() if self.gates else None
        if self.responses[conversation_id]:
            result = self.responses[conversation_id].popleft()
        else:
            result = list(self.histories[conversation_id])
        if gate is not None:
            await gate.wait()
        if self.fetch_error is not None:
            raise self.fetch_error
        if isinstance(result, Exception):
            raise result
        return result

    async def send_message(self, conversation_id: str, text: str) -> Message:
        if self.send_error is not None:
            raise self.send_error
        message = make_message(f"sent-{len(self.sent) + 1}", conversation_id, text=text)
        self.sent.append(message)
        return message


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def api() -> FakeConversationsAPI:
    return FakeConversationsAPI()


@pytest.fixture
def policy() -> ConnectionPolicy:
    return ConnectionPolicy(max_attempts=3, retry_delay=1.0, connect_timeout=5.0)


@pytest.fixture
def connection(server: FakeServer, clock: VirtualClock, policy: ConnectionPolicy) -> ChannelConnection:
    return ChannelConnection(
        "http://chat.test",
        policy=policy,
        client_factory=server.factory,
        sleep=clock.sleep,
    )
