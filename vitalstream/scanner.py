"""Wearable discovery over bleak."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TYPE_CHECKING, TypeAlias, Union

logger = logging.getLogger(__name__)

try:  # pragma: no cover - bleak is an optional extra
	from bleak import BleakScanner
except Exception:  # pragma: no cover
	BleakScanner = None  # type: ignore

if TYPE_CHECKING:  # pragma: no cover - typing helper only
	from bleak.backends.device import BLEDevice as _BLEDevice
	from bleak.backends.scanner import AdvertisementData as _AdvertisementData
else:  # pragma: no cover - runtime fallback when bleak unavailable
	_BLEDevice = Any
	_AdvertisementData = Any

BLEDevice: TypeAlias = _BLEDevice
AdvertisementData: TypeAlias = _AdvertisementData

FoundCallback = Callable[["ScanResult"], Union[None, Awaitable[None]]]


@dataclass(slots=True)
class ScanResult:
	"""A wearable seen during discovery."""

	address: str
	name: Optional[str]
	rssi: Optional[int]
	uuids: tuple[str, ...] = ()
	connectable: Optional[bool] = None

	@classmethod
	def from_bleak(cls, device: BLEDevice, advertisement: AdvertisementData | None = None) -> "ScanResult":
		uuids: Sequence[str] = ()
		connectable: Optional[bool] = None
		rssi = getattr(device, "rssi", None)
		name = device.name or None
		if advertisement is not None:
			uuids = advertisement.service_uuids or ()
			connectable = getattr(advertisement, "is_connectable", None)
			if advertisement.rssi is not None:
				rssi = advertisement.rssi
			name = getattr(advertisement, "local_name", None) or name
		return cls(
			address=device.address,
			name=name,
			rssi=rssi,
			uuids=tuple(str(uuid) for uuid in uuids),
			connectable=connectable,
		)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"address": self.address,
			"name": self.name,
			"rssi": self.rssi,
			"uuids": list(self.uuids),
			"connectable": self.connectable,
		}


@dataclass(slots=True)
class ScannerConfig:
	"""Filters applied to advertisements during discovery."""

	name_filter: Sequence[str] | None = None
	service_uuids: Sequence[str] | None = None
	max_devices: int | None = None
	named_only: bool = True
	adapter: Optional[str] = None
	callback: Optional[FoundCallback] = None

	def __post_init__(self) -> None:
		if self.max_devices is not None and self.max_devices <= 0:
			raise ValueError("max_devices must be positive when provided")

	def allows(self, result: ScanResult) -> bool:
		if self.named_only and not result.name:
			return False
		if self.name_filter:
			lowered = (result.name or "").lower()
			if not any(fragment.lower() in lowered for fragment in self.name_filter):
				return False
		if self.service_uuids:
			observed = {uuid.lower() for uuid in result.uuids}
			if not observed.issuperset(uuid.lower() for uuid in self.service_uuids):
				return False
		return True

	def bleak_kwargs(self) -> Dict[str, Any]:
		kwargs: Dict[str, Any] = {}
		if self.service_uuids:
			kwargs["service_uuids"] = list(self.service_uuids)
		if self.adapter:
			kwargs["adapter"] = self.adapter
		return kwargs


class Scanner:
	"""Collect wearables by address, stopping early once ``max_devices`` is hit."""

	def __init__(self, config: ScannerConfig | None = None) -> None:
		self.config = config or ScannerConfig()
		self._results: Dict[str, ScanResult] = {}
		self._loop: Optional[asyncio.AbstractEventLoop] = None
		self._stop_event: Optional[asyncio.Event] = None

	async def run(self, timeout: float) -> List[ScanResult]:
		if BleakScanner is None:
			logger.warning("bleak is not installed; returning empty scan results")
			return []

		self._results.clear()
		self._loop = asyncio.get_running_loop()
		self._stop_event = asyncio.Event()

		scanner = BleakScanner(detection_callback=self._on_detection, **self.config.bleak_kwargs())
		async with scanner:
			try:
				await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
			except asyncio.TimeoutError:
				pass
		return self.results()

	def results(self) -> List[ScanResult]:
		return sorted(self._results.values(), key=lambda item: item.rssi if item.rssi is not None else -999, reverse=True)

	def _on_detection(self, device: BLEDevice, advertisement: AdvertisementData | None) -> None:
		result = ScanResult.from_bleak(device, advertisement)
		if not self.config.allows(result):
			return
		is_new = result.address not in self._results
		self._results[result.address] = result
		if is_new and self.config.callback:
			self._dispatch_callback(result)

		if (
			self.config.max_devices is not None
			and len(self._results) >= self.config.max_devices
			and self._stop_event is not None
		):
			self._stop_event.set()

	def _dispatch_callback(self, result: ScanResult) -> None:
		if not self.config.callback:
			return
		try:
			outcome = self.config.callback(result)
			if asyncio.iscoroutine(outcome):
				loop = self._loop or asyncio.get_running_loop()
				loop.create_task(outcome)
		except Exception:  # pragma: no cover - diagnostic path
			logger.exception("scanner callback raised an exception")


async def discover(
	timeout: float = 10.0,
	*,
	names: Sequence[str] | None = None,
	service_uuids: Sequence[str] | None = None,
	max_devices: int | None = None,
	named_only: bool = True,
	adapter: Optional[str] = None,
	callback: Optional[FoundCallback] = None,
) -> List[ScanResult]:
	"""Scan for wearables for up to *timeout* seconds, strongest signal first."""
	config = ScannerConfig(
		name_filter=names,
		service_uuids=service_uuids,
		max_devices=max_devices,
		named_only=named_only,
		adapter=adapter,
		callback=callback,
	)
	return await Scanner(config).run(timeout)


__all__ = [
	"ScanResult",
	"ScannerConfig",
	"Scanner",
	"discover",
]
