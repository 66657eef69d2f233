"""Interval polling of the backend stream endpoint."""
from __future__ import annotations

import asyncio
import inspect
import logging
from time import monotonic
from typing import Any, Awaitable, Callable, Optional, Union

from vitalstream.metrics import EventLog
from vitalstream.models import StreamSnapshot

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[StreamSnapshot], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[BaseException], Union[None, Awaitable[None]]]
FetchFunction = Callable[[], Awaitable[StreamSnapshot]]


class StreamPoller:
    """Fetch the latest snapshot repeatedly, waiting ``interval`` after each fetch.

    The wait starts when a fetch completes, so slow responses stretch the
    period and two fetches are never in flight together. A failed fetch is
    reported to ``on_error`` and polling carries on with the next round.

    :meth:`stop` is cooperative: it prevents any further fetch and discards
    a snapshot that arrives for a fetch already in flight, but it does not
    abort that request.
    """

    def __init__(
        self,
        fetch: FetchFunction,
        on_data: SnapshotCallback,
        *,
        interval: float = 1.0,
        on_error: Optional[ErrorCallback] = None,
        events: Optional[EventLog] = None,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must not be negative")
        self.interval = interval
        self.events = events
        self._fetch = fetch
        self._on_data = on_data
        self._on_error = on_error

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self.fetch_count = 0
        self.error_count = 0
        self.discarded_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def start(self, runtime: Optional[float] = None) -> "StreamPoller":
        """Schedule :meth:`run` on the running loop and return ``self``."""
        if self.running:
            return self
        self._task = asyncio.get_running_loop().create_task(self.run(runtime=runtime))
        return self

    def stop(self) -> None:
        self._stop_event.set()

    __call__ = stop

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.shield(self._task)

    async def run(self, runtime: Optional[float] = None) -> None:
        """Poll until :meth:`stop` is called or *runtime* seconds elapse."""
        deadline = monotonic() + runtime if runtime is not None else None
        if self.events is not None:
            self.events.poll_started(self.interval)
        try:
            while not self._stop_event.is_set():
                if deadline is not None and monotonic() >= deadline:
                    break
                await self._poll_once()
                if self._stop_event.is_set():
                    break
                await self._sleep_with_stop(self.interval, deadline)
        finally:
            if self.events is not None:
                self.events.poll_stopped(self.fetch_count, self.error_count)

    async def _poll_once(self) -> None:
        self.fetch_count += 1
        try:
            snapshot = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.error_count += 1
            logger.warning("Polling error: %s", exc)
            if self.events is not None:
                self.events.poll_sample(error=exc)
            if self._on_error is not None:
                await self._dispatch(self._on_error, exc)
            return

        if self._stop_event.is_set():
            self.discarded_count += 1
            logger.debug("Discarding snapshot %s received after stop", snapshot.timestamp)
            return
        if self.events is not None:
            self.events.poll_sample(snapshot.timestamp)
        await self._dispatch(self._on_data, snapshot)

    async def _dispatch(self, callback: Callable[[Any], Any], payload: Any) -> None:
        try:
            outcome = callback(payload)
            if inspect.isawaitable(outcome):
                await outcome
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Polling callback raised")

    async def _sleep_with_stop(self, duration: float, deadline: Optional[float]) -> None:
        if duration <= 0:
            # Still yield so a zero interval cannot starve the loop.
            await asyncio.sleep(0)
            return
        wait_time = duration
        if deadline is not None:
            wait_time = min(wait_time, max(0.0, deadline - monotonic()))
            if wait_time <= 0:
                return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=wait_time)
        except asyncio.TimeoutError:
            pass


__all__ = ["StreamPoller", "SnapshotCallback", "ErrorCallback", "FetchFunction"]
