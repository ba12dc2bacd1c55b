"""
Reconnecting subscription over one server-to-client event stream.

Knows nothing about what the events mean: the owner supplies a stream
opener and an ``on_event`` callback. Retry policy lives here only.
"""
from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar, Union

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class _StreamOpen:
    def __repr__(self) -> str:
        return "STREAM_OPEN"


# Yielded by transports once the remote accepted the stream request.
STREAM_OPEN = _StreamOpen()


class StreamSignal(enum.Enum):
    CONTINUE = "continue"
    TERMINAL = "terminal"


OnEvent = Callable[[T], Union[Optional[StreamSignal], Awaitable[Optional[StreamSignal]]]]
OnStatus = Callable[[bool, Optional[str]], None]


def backoff_delay_ms(failures: int, floor_ms: int = 1000, cap_ms: int = 30000) -> int:
    """Delay before the retry that follows ``failures`` consecutive failures."""
    if failures < 1:
        return floor_ms
    return min(floor_ms * 2 ** (failures - 1), cap_ms)


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


class ReconnectingStream(Generic[T]):
    def __init__(
        self,
        open_stream: Callable[[], AsyncIterator[T]],
        on_event: OnEvent,
        *,
        on_status: Optional[OnStatus] = None,
        floor_ms: int = 1000,
        cap_ms: int = 30000,
        name: str = "stream",
        sleep: Callable[[float], Awaitable[None]] = _sleep,
    ) -> None:
        self._open_stream = open_stream
        self._on_event = on_event
        self._on_status = on_status
        self.floor_ms = floor_ms
        self.cap_ms = cap_ms
        self.name = name
        self._sleep = sleep

        self._abort = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.connected = False
        self.error: Optional[str] = None
        self.failures = 0
        self.current_delay_ms = floor_ms
        self.stopped = False

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self.run(), name=f"watch:{self.name}")
        return self._task

    def cancel(self) -> None:
        """Caller-initiated teardown: no retry, no error."""
        self._abort.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._abort.is_set()

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._abort.is_set():
                raise

    # ----------------------------
    # Status
    # ----------------------------
    def _set_status(self, connected: bool, error: Optional[str]) -> None:
        self.connected = connected
        self.error = error
        if self._on_status is not None:
            self._on_status(connected, error)

    def _mark_open(self) -> None:
        self.failures = 0
        self.current_delay_ms = self.floor_ms
        if not self.connected:
            self._set_status(True, None)

    # ----------------------------
    # Read loop
    # ----------------------------
    async def _consume_once(self) -> bool:
        """Read one stream until it ends. Returns True on a terminal signal."""
        stream = self._open_stream()
        try:
            async for item in stream:
                if self._abort.is_set():
                    return False
                self._mark_open()
                if item is STREAM_OPEN:
                    continue
                signal = self._on_event(item)
                if inspect.isawaitable(signal):
                    signal = await signal
                if signal is StreamSignal.TERMINAL:
                    return True
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return False

    async def run(self) -> None:
        while not self._abort.is_set():
            try:
                terminal = await self._consume_once()
            except asyncio.CancelledError:
                if self._abort.is_set():
                    break
                raise
            except Exception as exc:
                if self._abort.is_set():
                    break
                self._fail(f"Connection lost: {exc}" if str(exc) else "Connection lost")
            else:
                if self._abort.is_set():
                    break
                if terminal:
                    LOGGER.info("%s: terminal event, not reconnecting", self.name)
                    self.stopped = True
                    self._set_status(False, None)
                    return
                self._fail("Connection closed by server")

            delay_ms = self.current_delay_ms
            LOGGER.warning("%s: %s; retrying in %d ms", self.name, self.error, delay_ms)
            try:
                await self._sleep(delay_ms / 1000)
            except asyncio.CancelledError:
                if self._abort.is_set():
                    break
                raise
            self.current_delay_ms = min(self.current_delay_ms * 2, self.cap_ms)

        self.stopped = True
        self.connected = False

    def _fail(self, message: str) -> None:
        self.failures += 1
        self._set_status(False, message)
