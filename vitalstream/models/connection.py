from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from ._payload import optional_float, require_mapping


class DeviceType(str, Enum):
    BRACELET = "bracelet"
    CLIP = "clip"
    WATCH = "watch"
    BAND = "band"
    MOBILE_APP = "mobile_app"


@dataclass(frozen=True, slots=True)
class DeviceStatus:
    device_id: str
    is_connected: bool = False
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    firmware_version: Optional[str] = None
    last_updated: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Any) -> "DeviceStatus":
        data = require_mapping(payload, "device status")
        return cls(
            device_id=str(data.get("device_id", "")),
            is_connected=bool(data.get("is_connected", False)),
            battery_level=optional_float(data.get("battery_level")),
            signal_strength=optional_float(data.get("signal_strength")),
            firmware_version=data.get("firmware_version"),
            last_updated=data.get("last_updated"),
        )

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "is_connected": self.is_connected,
            "battery_level": self.battery_level,
            "signal_strength": self.signal_strength,
            "firmware_version": self.firmware_version,
            "last_updated": self.last_updated,
        }


@dataclass(frozen=True, slots=True)
class ConnectionResponse:
    """Result of registering a device with the backend.

    ``session_id`` is for display only; later requests are not keyed by it.
    """

    success: bool
    message: str
    session_id: str
    device_status: Optional[DeviceStatus] = None
    available_features: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, payload: Any) -> "ConnectionResponse":
        data = require_mapping(payload, "connection")
        device = data.get("device_status")
        return cls(
            success=bool(data.get("success", False)),
            message=str(data.get("message", "")),
            session_id=str(data.get("session_id", "")),
            device_status=DeviceStatus.from_dict(device) if device is not None else None,
            available_features=tuple(str(item) for item in data.get("available_features") or ()),
        )

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "session_id": self.session_id,
            "device_status": self.device_status.to_dict() if self.device_status else None,
            "available_features": list(self.available_features),
        }
