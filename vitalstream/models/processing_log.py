from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from ._payload import freeze, require_mapping, thaw


@dataclass(frozen=True, slots=True)
class ProcessingLog:
    """Single backend processing-log entry."""

    timestamp: str
    level: str
    message: str
    data: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_dict(cls, payload: Any) -> "ProcessingLog":
        data = require_mapping(payload, "processing log")
        extra = data.get("data")
        return cls(
            timestamp=str(data.get("timestamp", "")),
            level=str(data.get("level", "INFO")),
            message=str(data.get("message", "")),
            data=freeze(extra) if extra is not None else None,
        )

    def to_dict(self) -> dict:
        payload = {"timestamp": self.timestamp, "level": self.level, "message": self.message}
        if self.data is not None:
            payload["data"] = thaw(self.data)
        return payload


@dataclass(frozen=True, slots=True)
class ProcessingLogPage:
    total: int
    logs: Tuple[ProcessingLog, ...] = ()

    @classmethod
    def from_dict(cls, payload: Any) -> "ProcessingLogPage":
        data = require_mapping(payload, "processing log page")
        logs = tuple(ProcessingLog.from_dict(item) for item in data.get("logs") or ())
        return cls(total=int(data.get("total", len(logs))), logs=logs)

    def to_dict(self) -> dict:
        return {"total": self.total, "logs": [entry.to_dict() for entry in self.logs]}
