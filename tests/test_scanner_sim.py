"""Simulation tests for wearable discovery."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple
from unittest import IsolatedAsyncioTestCase
from unittest.mock import patch

from vitalstream.scanner import ScanResult, Scanner, ScannerConfig, discover


class FakeBleakScanner:
    """Minimal async context manager that replays predetermined advertisements."""

    events: List[Tuple[Any, Any]] = []
    last_kwargs: Dict[str, Any] = {}

    def __init__(self, detection_callback=None, **kwargs: Any) -> None:
        self._callback = detection_callback
        self._task: Optional[asyncio.Task[None]] = None
        FakeBleakScanner.last_kwargs = kwargs

    async def __aenter__(self):
        self._task = asyncio.create_task(self._emit())
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._task:
            await self._task
        return False

    async def _emit(self) -> None:
        await asyncio.sleep(0)
        if not self._callback:
            return
        for device, advertisement in list(self.events):
            self._callback(device, advertisement)
        await asyncio.sleep(0)


def _device(address: str, name: Optional[str], rssi: int = -70) -> SimpleNamespace:
    return SimpleNamespace(address=address, name=name, rssi=rssi)


def _advert(rssi: int, uuids=None, local_name=None, connectable=True) -> SimpleNamespace:
    return SimpleNamespace(service_uuids=uuids, rssi=rssi, local_name=local_name, is_connectable=connectable)


class ScannerSimulationTest(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        FakeBleakScanner.events = []
        FakeBleakScanner.last_kwargs = {}

    async def test_discover_orders_by_signal_strength(self) -> None:
        FakeBleakScanner.events = [
            (_device("AA:00:00:00:00:01", "Vital Band"), _advert(-72, uuids=["180d"])),
            (_device("AA:00:00:00:00:02", "Vital Watch"), _advert(-48)),
        ]
        with patch("vitalstream.scanner.BleakScanner", FakeBleakScanner):
            results = await discover(timeout=0.1, max_devices=2)

        self.assertEqual([r.address for r in results], ["AA:00:00:00:00:02", "AA:00:00:00:00:01"])
        self.assertIsInstance(results[0], ScanResult)
        self.assertEqual(results[1].uuids, ("180d",))
        self.assertTrue(results[0].connectable)

    async def test_unnamed_devices_skipped_by_default(self) -> None:
        FakeBleakScanner.events = [
            (_device("AA:00:00:00:00:03", None), _advert(-40)),
            (_device("AA:00:00:00:00:04", "Clip"), _advert(-60)),
        ]
        with patch("vitalstream.scanner.BleakScanner", FakeBleakScanner):
            named = await discover(timeout=0.05)
            everything = await discover(timeout=0.05, named_only=False)

        self.assertEqual([r.address for r in named], ["AA:00:00:00:00:04"])
        self.assertEqual(len(everything), 2)

    async def test_name_filter_is_case_insensitive_and_prefers_local_name(self) -> None:
        FakeBleakScanner.events = [
            (_device("AA:00:00:00:00:05", "generic"), _advert(-50, local_name="VITAL Ring")),
            (_device("AA:00:00:00:00:06", "Headphones"), _advert(-45)),
        ]
        with patch("vitalstream.scanner.BleakScanner", FakeBleakScanner):
            results = await discover(timeout=0.05, names=["vital"])

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].name, "VITAL Ring")

    async def test_repeated_advertisements_update_in_place(self) -> None:
        device = _device("AA:00:00:00:00:07", "Band")
        FakeBleakScanner.events = [(device, _advert(-80)), (device, _advert(-55))]
        found: List[ScanResult] = []
        scanner = Scanner(ScannerConfig(callback=found.append))

        with patch("vitalstream.scanner.BleakScanner", FakeBleakScanner):
            results = await scanner.run(timeout=0.05)

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].rssi, -55)
        self.assertEqual(len(found), 1)

    async def test_service_filter_passed_to_bleak(self) -> None:
        FakeBleakScanner.events = [
            (_device("AA:00:00:00:00:08", "Band"), _advert(-50, uuids=["0000180D-0000-1000-8000-00805F9B34FB"])),
            (_device("AA:00:00:00:00:09", "Other"), _advert(-50, uuids=[])),
        ]
        wanted = "0000180d-0000-1000-8000-00805f9b34fb"
        with patch("vitalstream.scanner.BleakScanner", FakeBleakScanner):
            results = await discover(timeout=0.05, service_uuids=[wanted], adapter="hci1")

        self.assertEqual([r.address for r in results], ["AA:00:00:00:00:08"])
        self.assertEqual(FakeBleakScanner.last_kwargs, {"service_uuids": [wanted], "adapter": "hci1"})

    async def test_missing_bleak_returns_empty(self) -> None:
        with patch("vitalstream.scanner.BleakScanner", None):
            with self.assertLogs("vitalstream.scanner", level="WARNING"):
                results = await discover(timeout=0.01)
        self.assertEqual(results, [])

    def test_invalid_max_devices_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ScannerConfig(max_devices=0)


if __name__ == "__main__":
    import unittest

    unittest.main()
