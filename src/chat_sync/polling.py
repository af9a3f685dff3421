"""
Fallback poll scheduler.

While an automated reply is expected, re-fetch a conversation's history on a
fixed interval for a bounded time. Each armed conversation gets one PollHandle
(start time, interval, deadline) backed by an asyncio task. Both the clock and
the sleep function are injectable so the schedule can run on virtual time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from chat_sync.config import PollPolicy

logger = logging.getLogger(__name__)


@dataclass
class PollHandle:
    conversation_id: str
    started_at: float
    interval: float
    deadline: float
    fetches: int = 0
    active: bool = True
    stop_reason: Optional[str] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def expired(self, now: float) -> bool:
        return now >= self.deadline

    def next_delay(self, now: float) -> float:
        return max(0.0, min(self.interval, self.deadline - now))

    async def wait(self) -> None:
        """Wait for the poll loop to finish (expired or disarmed)."""
        if self.task is not None and not self.task.done():
            await asyncio.wait({self.task})


class FallbackPollScheduler:
    def __init__(
        self,
        load_history: Callable[[str], Awaitable[Any]],
        policy: Optional[PollPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._load_history = load_history
        self._policy = policy or PollPolicy()
        self._clock = clock
        self._sleep = sleep
        self._handles: dict[str, PollHandle] = {}

    def is_armed(self, conversation_id: str) -> bool:
        handle = self._handles.get(conversation_id)
        return handle is not None and handle.active

    def handle(self, conversation_id: str) -> Optional[PollHandle]:
        return self._handles.get(conversation_id)

    def arm(self, conversation_id: str) -> PollHandle:
        """Start polling unless already armed; re-arming never resets the deadline."""
        handle = self._handles.get(conversation_id)
        if handle is not None and handle.active:
            return handle
        now = self._clock()
        handle = PollHandle(
            conversation_id=conversation_id,
            started_at=now,
            interval=self._policy.interval,
            deadline=now + self._policy.max_duration,
        )
        self._handles[conversation_id] = handle
        handle.task = asyncio.create_task(self._run(handle))
        logger.info(
            f"Fallback poll armed for {conversation_id} "
            f"(every {handle.interval}s for {self._policy.max_duration}s)"
        )
        return handle

    def disarm(self, conversation_id: str, reason: str = "disarmed") -> bool:
        handle = self._handles.get(conversation_id)
        if handle is None or not handle.active:
            return False
        self._stop(handle, reason)
        return True

    async def wait(self, conversation_id: str) -> None:
        handle = self._handles.get(conversation_id)
        if handle is not None:
            await handle.wait()

    async def shutdown(self) -> None:
        handles = list(self._handles.values())
        for handle in handles:
            if handle.active:
                self._stop(handle, "shutdown")
        for handle in handles:
            await handle.wait()

    def _stop(self, handle: PollHandle, reason: str) -> None:
        handle.active = False
        handle.stop_reason = reason
        if self._handles.get(handle.conversation_id) is handle:
            del self._handles[handle.conversation_id]
        task = handle.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        logger.info(f"Fallback poll for {handle.conversation_id} stopped ({reason}) after {handle.fetches} fetches")

    async def _run(self, handle: PollHandle) -> None:
        while handle.active:
            await self._sleep(handle.next_delay(self._clock()))
            if not handle.active:
                return
            if handle.expired(self._clock()):
                self._stop(handle, "expired")
                return
            handle.fetches += 1
            try:
                await self._load_history(handle.conversation_id)
            except Exception as e:
                logger.warning(f"Fallback poll fetch for {handle.conversation_id} failed: {e}")
