"""Streaming socket client with exponential-backoff reconnection."""
from __future__ import annotations

import asyncio
import contextlib
import functools
import inspect
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union

import aiohttp

from vitalstream.errors import BackendProtocolError, StreamTransportError
from vitalstream.metrics import EventLog, SocketEvent
from vitalstream.models import StreamSnapshot

logger = logging.getLogger(__name__)

STREAM_DATA = "stream_data"
DEFAULT_OPEN_TIMEOUT = 10.0

SnapshotCallback = Callable[[StreamSnapshot], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[BaseException], Union[None, Awaitable[None]]]
CloseCallback = Callable[[], Union[None, Awaitable[None]]]


class StreamChannel(Protocol):
    """Minimal text-frame socket used by :class:`StreamSocket`."""

    async def receive(self) -> Optional[str]:
        """Return the next text frame, or ``None`` once the peer has closed."""

    async def close(self) -> None:
        ...


ChannelFactory = Callable[[str], Awaitable[StreamChannel]]


class SocketState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """Reconnect delays in seconds: ``initial`` doubling up to ``ceiling``."""

    initial: float = 1.0
    ceiling: float = 30.0
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.initial <= 0:
            raise ValueError("initial delay must be positive")
        if self.ceiling < self.initial:
            raise ValueError("ceiling must be at least the initial delay")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must not be negative")

    def next_delay(self, delay: float) -> float:
        return min(delay * 2, self.ceiling)

    def delays(self) -> List[float]:
        out: List[float] = []
        delay = self.initial
        for _ in range(self.max_attempts):
            out.append(delay)
            delay = self.next_delay(delay)
        return out


class AiohttpChannel:
    """:class:`StreamChannel` over an ``aiohttp`` client websocket."""

    def __init__(self, session: aiohttp.ClientSession, ws: aiohttp.ClientWebSocketResponse, *, owns_session: bool) -> None:
        self._session = session
        self._ws = ws
        self._owns_session = owns_session

    @classmethod
    async def open(
        cls,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        *,
        timeout: float = DEFAULT_OPEN_TIMEOUT,
    ) -> "AiohttpChannel":
        """Open *url*, giving up after *timeout* seconds of handshake."""
        owns_session = session is None
        active = session or aiohttp.ClientSession()
        try:
            ws = await asyncio.wait_for(active.ws_connect(url), timeout=timeout)
        except asyncio.TimeoutError as exc:
            if owns_session:
                await active.close()
            raise StreamTransportError(f"could not open {url}: no handshake after {timeout:g}s") from exc
        except (aiohttp.ClientError, OSError) as exc:
            if owns_session:
                await active.close()
            raise StreamTransportError(f"could not open {url}: {exc}") from exc
        except asyncio.CancelledError:
            if owns_session:
                await active.close()
            raise
        return cls(active, ws, owns_session=owns_session)

    async def receive(self) -> Optional[str]:
        message = await self._ws.receive()
        if message.type == aiohttp.WSMsgType.TEXT:
            return message.data
        if message.type == aiohttp.WSMsgType.BINARY:
            return message.data.decode("utf-8", errors="replace")
        if message.type == aiohttp.WSMsgType.ERROR:
            raise StreamTransportError(str(self._ws.exception() or "websocket error"))
        # CLOSE, CLOSING and CLOSED all end the stream.
        return None

    async def close(self) -> None:
        try:
            await self._ws.close()
        finally:
            if self._owns_session:
                await self._session.close()


class StreamSocket:
    """Receive ``stream_data`` frames from ``/ws/stream`` and reconnect on loss.

    Every close, including a failed connection attempt, is reported through
    ``on_close`` and followed by a reconnect after the current backoff delay,
    until ``policy.max_attempts`` consecutive attempts have been used. A
    successful open resets the attempt counter and the delay. After the last
    attempt the socket gives up without raising.

    A single supervising task owns the channel, so at most one reconnect wait
    is ever pending.
    """

    def __init__(
        self,
        url: str,
        *,
        policy: Optional[BackoffPolicy] = None,
        channel_factory: Optional[ChannelFactory] = None,
        events: Optional[EventLog] = None,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
    ) -> None:
        self.url = url
        self.policy = policy or BackoffPolicy()
        self.events = events
        self._channel_factory: ChannelFactory = channel_factory or functools.partial(
            AiohttpChannel.open, timeout=open_timeout
        )

        self.state = SocketState.DISCONNECTED
        self.reconnect_attempts = 0
        self.reconnect_delay = self.policy.initial
        self.reconnect_delays: List[float] = []
        self.messages_received = 0

        self._on_data: Optional[SnapshotCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._on_close: Optional[CloseCallback] = None
        self._channel: Optional[StreamChannel] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        return self.state is SocketState.CONNECTED

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def connect(
        self,
        on_data: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        on_close: Optional[CloseCallback] = None,
    ) -> None:
        """Start the connection loop; a no-op while one is already running."""
        if self.running:
            logger.debug("StreamSocket for %s already running", self.url)
            return
        self._on_data = on_data
        self._on_error = on_error
        self._on_close = on_close
        self.reconnect_attempts = 0
        self.reconnect_delay = self.policy.initial
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def disconnect(self, timeout: float = 5.0) -> None:
        """Close the socket and suppress any further reconnect."""
        self.reconnect_attempts = self.policy.max_attempts
        self._stop_event.set()
        channel = self._channel
        if channel is not None:
            with contextlib.suppress(Exception):
                await channel.close()
        task = self._task
        if task is None or task.done():
            self.state = SocketState.CLOSED
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("StreamSocket for %s did not close in %.1fs; cancelling", self.url, timeout)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.state = SocketState.CLOSED

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.shield(self._task)

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------
    async def _run(self) -> None:
        try:
            while True:
                await self._connect_once()

                self.state = SocketState.DISCONNECTED
                logger.info("WebSocket disconnected from %s", self.url)
                if self.events is not None:
                    self.events.socket_event(SocketEvent.CLOSE, self.url)
                if self._on_close is not None:
                    await self._dispatch(self._on_close)

                if self._stop_event.is_set() or self.reconnect_attempts >= self.policy.max_attempts:
                    break

                self.reconnect_attempts += 1
                delay = self.reconnect_delay
                self.reconnect_delays.append(delay)
                if self.events is not None:
                    self.events.socket_event(
                        SocketEvent.RECONNECT, self.url, attempt=self.reconnect_attempts, delay=delay
                    )
                await self._sleep_with_stop(delay)
                self.reconnect_delay = self.policy.next_delay(delay)
                if self._stop_event.is_set():
                    break
                logger.info("Reconnecting to %s (attempt %d)", self.url, self.reconnect_attempts)
        finally:
            self.state = SocketState.CLOSED

    async def _connect_once(self) -> None:
        self.state = SocketState.CONNECTING
        try:
            channel = await self._open_channel()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._report_error(exc)
            return
        if channel is None:
            return

        if self._stop_event.is_set():
            with contextlib.suppress(Exception):
                await channel.close()
            return

        self._channel = channel
        self.state = SocketState.CONNECTED
        self.reconnect_attempts = 0
        self.reconnect_delay = self.policy.initial
        logger.info("WebSocket connected to %s", self.url)
        if self.events is not None:
            self.events.socket_event(SocketEvent.OPEN, self.url)
        try:
            await self._receive_loop(channel)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._report_error(exc)
        finally:
            self._channel = None
            with contextlib.suppress(Exception):
                await channel.close()

    async def _open_channel(self) -> Optional[StreamChannel]:
        """Run the channel factory until it returns or the socket is stopped.

        Returns ``None`` when a stop request abandoned the attempt.
        """
        opening = asyncio.ensure_future(self._channel_factory(self.url))
        stopping = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({opening, stopping}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopping.cancel()
            if not opening.done():
                opening.cancel()
                # Let the factory release its session first.
                await asyncio.wait({opening})
        if opening.cancelled():
            logger.debug("Abandoned opening %s on disconnect", self.url)
            return None
        return opening.result()

    async def _receive_loop(self, channel: StreamChannel) -> None:
        while True:
            frame = await channel.receive()
            if frame is None:
                return
            await self._handle_frame(frame)

    async def _handle_frame(self, frame: str) -> None:
        self.messages_received += 1
        try:
            message = json.loads(frame)
        except ValueError as exc:
            logger.error("WebSocket message parse error: %s", exc)
            return
        if not isinstance(message, dict) or message.get("type") != STREAM_DATA:
            return
        data = message.get("data")
        if data is None:
            return
        try:
            snapshot = StreamSnapshot.from_dict(data)
        except BackendProtocolError as exc:
            logger.error("WebSocket stream payload rejected: %s", exc)
            return
        if self._on_data is not None:
            await self._dispatch(self._on_data, snapshot)

    async def _report_error(self, exc: BaseException) -> None:
        logger.error("WebSocket error on %s: %s", self.url, exc)
        if self.events is not None:
            self.events.socket_event(SocketEvent.ERROR, self.url, error=exc)
        if self._on_error is not None:
            await self._dispatch(self._on_error, exc)

    async def _dispatch(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("StreamSocket callback raised")

    async def _sleep_with_stop(self, duration: float) -> None:
        if duration <= 0:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=duration)
        except asyncio.TimeoutError:
            pass


__all__ = [
    "AiohttpChannel",
    "BackoffPolicy",
    "ChannelFactory",
    "SocketState",
    "StreamChannel",
    "StreamSocket",
    "STREAM_DATA",
]
