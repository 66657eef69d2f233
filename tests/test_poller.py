"""Timing tests for the stream poller using scaled-down intervals."""
from __future__ import annotations

import asyncio
import unittest
from typing import List

from vitalstream.models import StreamSnapshot
from vitalstream.poller import StreamPoller


def _snapshot(index: int) -> StreamSnapshot:
    return StreamSnapshot.from_dict({"timestamp": f"t{index}", "raw_signals": {"heart_rate": 60 + index}})


class _InstrumentedFetch:
    """Fake fetch that records how many calls overlap."""

    def __init__(self, latency: float = 0.0, failures: int = 0) -> None:
        self.latency = latency
        self.failures = failures
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self) -> StreamSnapshot:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.latency)
            if self.calls <= self.failures:
                raise ConnectionError(f"fetch {self.calls} failed")
            return _snapshot(self.calls)
        finally:
            self.in_flight -= 1


class StreamPollerTest(unittest.IsolatedAsyncioTestCase):
    async def test_never_two_fetches_in_flight(self) -> None:
        fetch = _InstrumentedFetch(latency=0.01)
        poller = StreamPoller(fetch, lambda snapshot: None, interval=0)
        await poller.run(runtime=0.1)
        self.assertGreater(fetch.calls, 1)
        self.assertEqual(fetch.max_in_flight, 1)

    async def test_first_fetch_is_immediate_and_results_are_ordered(self) -> None:
        fetch = _InstrumentedFetch()
        seen: List[str] = []
        poller = StreamPoller(fetch, lambda snapshot: seen.append(snapshot.timestamp), interval=0.01)
        poller.start()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        self.assertEqual(fetch.calls, 1)
        await asyncio.sleep(0.05)
        poller.stop()
        await poller.wait_closed()
        self.assertEqual(seen, [f"t{i}" for i in range(1, len(seen) + 1)])

    async def test_stop_cancels_scheduled_fetch(self) -> None:
        fetch = _InstrumentedFetch()
        first = asyncio.Event()
        poller = StreamPoller(fetch, lambda snapshot: first.set(), interval=0.05)
        poller.start()
        await asyncio.wait_for(first.wait(), timeout=1.0)
        poller.stop()
        await asyncio.sleep(0.15)
        self.assertEqual(fetch.calls, 1)
        self.assertFalse(poller.running)

    async def test_stop_handle_is_callable(self) -> None:
        fetch = _InstrumentedFetch()
        poller = StreamPoller(fetch, lambda snapshot: None, interval=0.05).start()
        await asyncio.sleep(0.01)
        poller()
        await poller.wait_closed()
        self.assertTrue(poller.stopped)

    async def test_late_result_after_stop_is_discarded(self) -> None:
        gate = asyncio.Event()
        delivered: List[StreamSnapshot] = []

        async def gated_fetch() -> StreamSnapshot:
            await gate.wait()
            return _snapshot(1)

        poller = StreamPoller(gated_fetch, delivered.append, interval=0.01).start()
        await asyncio.sleep(0.01)
        poller.stop()
        gate.set()
        await poller.wait_closed()
        self.assertEqual(delivered, [])
        self.assertEqual(poller.discarded_count, 1)
        self.assertEqual(poller.fetch_count, 1)

    async def test_slow_fetch_stretches_period(self) -> None:
        # 30 ms fetch + 20 ms wait gives a 50 ms cycle, so 200 ms allows at most 5 fetches.
        fetch = _InstrumentedFetch(latency=0.03)
        poller = StreamPoller(fetch, lambda snapshot: None, interval=0.02)
        await poller.run(runtime=0.2)
        self.assertLessEqual(fetch.calls, 6)
        self.assertGreaterEqual(fetch.calls, 2)

    async def test_errors_are_reported_and_polling_continues(self) -> None:
        fetch = _InstrumentedFetch(failures=2)
        errors: List[BaseException] = []
        data = asyncio.Event()
        poller = StreamPoller(fetch, lambda snapshot: data.set(), interval=0, on_error=errors.append).start()
        await asyncio.wait_for(data.wait(), timeout=1.0)
        poller.stop()
        await poller.wait_closed()
        self.assertEqual(len(errors), 2)
        self.assertIsInstance(errors[0], ConnectionError)
        self.assertEqual(poller.error_count, 2)

    async def test_errors_without_callback_do_not_stop_polling(self) -> None:
        fetch = _InstrumentedFetch(failures=3)
        poller = StreamPoller(fetch, lambda snapshot: None, interval=0)
        await poller.run(runtime=0.05)
        self.assertGreater(fetch.calls, 3)

    async def test_async_and_raising_callbacks(self) -> None:
        fetch = _InstrumentedFetch()
        received: List[str] = []

        async def on_data(snapshot: StreamSnapshot) -> None:
            await asyncio.sleep(0)
            received.append(snapshot.timestamp)
            if len(received) == 1:
                raise RuntimeError("renderer failed")

        poller = StreamPoller(fetch, on_data, interval=0)
        with self.assertLogs("vitalstream.poller", level="ERROR"):
            await poller.run(runtime=0.05)
        self.assertGreater(len(received), 1)

    async def test_zero_runtime_makes_no_fetch(self) -> None:
        fetch = _InstrumentedFetch()
        received: List[StreamSnapshot] = []
        poller = StreamPoller(fetch, received.append, interval=0.01)
        await asyncio.wait_for(poller.run(runtime=0), timeout=1.0)
        self.assertEqual(fetch.calls, 0)
        self.assertEqual(received, [])

    def test_negative_interval_rejected(self) -> None:
        with self.assertRaises(ValueError):
            StreamPoller(_InstrumentedFetch(), lambda snapshot: None, interval=-1)


if __name__ == "__main__":
    unittest.main()
