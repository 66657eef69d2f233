from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from ._payload import empty_mapping, freeze, require_mapping


@dataclass(frozen=True, slots=True)
class SystemStatus:
    """Health probe snapshot returned by ``/api/v1/health``."""

    status: str
    timestamp: str = ""
    services: Mapping[str, bool] = field(default_factory=empty_mapping)
    connected_clients: int = 0
    active_sessions: int = 0

    @classmethod
    def from_dict(cls, payload: Any) -> "SystemStatus":
        data = require_mapping(payload, "system status")
        services = data.get("services") or {}
        return cls(
            status=str(data.get("status", "unknown")),
            timestamp=str(data.get("timestamp", "")),
            services=freeze({str(name): bool(up) for name, up in dict(services).items()}),
            connected_clients=int(data.get("connected_clients") or 0),
            active_sessions=int(data.get("active_sessions") or 0),
        )

    @property
    def is_healthy(self) -> bool:
        return self.status.lower() in {"ok", "healthy"}

    @property
    def degraded_services(self) -> tuple[str, ...]:
        return tuple(sorted(name for name, up in self.services.items() if not up))

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "services": dict(self.services),
            "connected_clients": self.connected_clients,
            "active_sessions": self.active_sessions,
        }
