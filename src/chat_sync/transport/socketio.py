"""
Socket.IO channel connection.

One long-lived connection per client. Socket.IO's own reconnection is disabled:
retries follow ConnectionPolicy (bounded attempts, fixed delay) through the
transitions in transport.state, and every transition is pushed to state
listeners before inbound push events are dispatched again.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

import socketio
from pydantic import ValidationError
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from chat_sync.broadcast import DEFAULT_QUEUE_SIZE, Broadcast
from chat_sync.config import ConnectionPolicy
from chat_sync.errors import ConnectionError
from chat_sync.models.events import S2CEvent
from chat_sync.models.message import Message
from chat_sync.transport import state as fsm
from chat_sync.transport.state import ConnectionState, ConnectionStatus

DEFAULT_SOCKETIO_PATH = "/socket.io"

StateListener = Callable[[ConnectionStatus, ConnectionStatus], Union[None, Awaitable[None]]]

logger = logging.getLogger(__name__)


class ChannelConnection:
    def __init__(
        self,
        url: str,
        *,
        policy: Optional[ConnectionPolicy] = None,
        socketio_path: str = DEFAULT_SOCKETIO_PATH,
        transports: Optional[list[str]] = None,
        auth: Optional[dict[str, Any]] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        client_factory: Callable[..., Any] = socketio.AsyncClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._url = url
        self._policy = policy or ConnectionPolicy()
        self._socketio_path = socketio_path
        self._transports = transports or ["websocket", "polling"]
        self._auth = auth
        self._client_factory = client_factory
        self._sleep = sleep
        self._sio: Optional[Any] = None
        self._status = ConnectionStatus()
        self._runner: Optional[asyncio.Task] = None
        self._dispatching = False
        self._state_listeners: list[StateListener] = []
        self.messages: Broadcast[Message] = Broadcast("messages", queue_size)
        self.server_notices: Broadcast[dict[str, Any]] = Broadcast("server_notices", queue_size)

    @property
    def policy(self) -> ConnectionPolicy:
        return self._policy

    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def state(self) -> ConnectionState:
        return self._status.state

    @property
    def attempt(self) -> int:
        return self._status.attempt

    @property
    def connected(self) -> bool:
        return self._status.connected and self._sio is not None

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a (sync or async) callable receiving (old, new) on every transition.

        Listeners run in registration order and are awaited before push
        dispatch resumes on a new connection. Returns a cleanup function.
        """
        self._state_listeners.append(listener)

        def remove() -> None:
            try:
                self._state_listeners.remove(listener)
            except ValueError:
                pass
        return remove

    async def connect(self) -> None:
        """Connect, retrying per policy. Returns once connected or retries are exhausted."""
        if self._status.state is not ConnectionState.DISCONNECTED:
            if self._runner is not None and not self._runner.done():
                await asyncio.wait({self._runner})
            return
        await self._set_status(fsm.begin_connect(self._status))
        await asyncio.wait({self._start_runner()})

    async def disconnect(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None and not runner.done() and runner is not asyncio.current_task():
            runner.cancel()
            await asyncio.wait({runner})
        self._dispatching = False
        sio, self._sio = self._sio, None
        if sio is not None:
            try:
                await sio.disconnect()
            except Exception as e:
                logger.warning(f"Error while closing channel: {e}")
        await self._set_status(fsm.closed(self._status))

    async def reconnect(self) -> None:
        """Force a full disconnect/connect cycle; the attempt counter starts over."""
        logger.info("Manual reconnect requested")
        await self.disconnect()
        await self.connect()

    async def emit(self, event: str, data: Any = None) -> None:
        if not self.connected:
            raise ConnectionError(f"Channel not connected, cannot emit {event}")
        await self._sio.emit(event, data)  # type: ignore[union-attr]

    def _start_runner(self, delay: float = 0.0) -> asyncio.Task:
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self._connect_with_retry(delay))
        return self._runner

    async def _connect_with_retry(self, delay: float = 0.0) -> bool:
        if delay:
            await self._sleep(delay)
        while True:
            if await self._attempt():
                if self._status.state is not ConnectionState.RETRYING:
                    return True
                # dropped again while subscriptions were being restored
                await self._sleep(self._policy.retry_delay)
                continue
            status = fsm.failed(self._status, self._policy)
            await self._set_status(status)
            if status.state is ConnectionState.DISCONNECTED:
                logger.error(f"Channel connection failed after {status.attempt} retries, giving up")
                return False
            logger.info(f"Retrying channel connection (attempt {status.attempt}/{self._policy.max_attempts})")
            await self._sleep(self._policy.retry_delay)

    async def _attempt(self) -> bool:
        sio = self._client_factory(reconnection=False, logger=False, engineio_logger=False)
        self._register_handlers(sio)
        self._sio = sio
        try:
            await sio.connect(
                self._url,
                auth=self._auth,
                transports=self._transports,
                socketio_path=self._socketio_path,
                wait_timeout=self._policy.connect_timeout,
            )
        except (SocketIOConnectionError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Channel connect attempt to {self._url} failed: {e}")
            if self._sio is sio:
                self._sio = None
            return False

        self._dispatching = False
        await self._set_status(fsm.connected(self._status))
        self._dispatching = self._sio is sio
        return True

    def _register_handlers(self, sio: Any) -> None:
        @sio.event
        async def disconnect(_reason: str = "") -> None:
            await self._on_disconnect(sio)

        @sio.on("*")
        async def on_any(event: str, data: Any = None) -> None:
            if sio is self._sio:
                self._dispatch(event, data)

    async def _on_disconnect(self, sio: Any) -> None:
        if sio is not self._sio:
            return  # closed on purpose, or superseded by a newer client
        self._sio = None
        self._dispatching = False
        logger.warning("Channel dropped unexpectedly")
        status = fsm.failed(self._status, self._policy)
        await self._set_status(status)
        if status.state is ConnectionState.RETRYING:
            self._start_runner(delay=self._policy.retry_delay)

    def _dispatch(self, event: str, data: Any) -> None:
        if event in S2CEvent.LIFECYCLE:
            return
        if not self._dispatching:
            logger.debug(f"Dropping {event} received before subscriptions were restored")
            return
        if event == S2CEvent.MESSAGE_NEW:
            try:
                message = Message.model_validate(data)
            except ValidationError as e:
                logger.warning(f"Discarding malformed {event} payload: {e}")
                return
            self.messages.publish(message)
        elif event == S2CEvent.NOTIFICATION_NEW:
            if isinstance(data, dict):
                self.server_notices.publish(data)
        else:
            logger.debug(f"Ignoring unhandled event {event}")

    async def _set_status(self, status: ConnectionStatus) -> None:
        old = self._status
        if status == old:
            return
        self._status = status
        logger.info(f"Channel {old} -> {status}")
        for listener in list(self._state_listeners):
            try:
                result = listener(old, status)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"State listener failed on {old} -> {status}")
