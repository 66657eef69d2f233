from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from ._payload import empty_mapping, freeze, optional_float, optional_str, require_mapping, thaw


class SessionType(str, Enum):
    WORKOUT = "workout"
    MEDITATION = "meditation"
    SLEEP = "sleep"
    DAILY_MONITORING = "daily_monitoring"
    CLINICAL = "clinical"


@dataclass(frozen=True, slots=True)
class SessionResponse:
    session_id: str
    device_id: str
    session_type: str
    start_time: str
    status: str
    user_id: Optional[str] = None
    end_time: Optional[str] = None
    data_points_collected: int = 0
    average_wellness_score: Optional[float] = None
    summary: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=empty_mapping)

    @classmethod
    def from_dict(cls, payload: Any) -> "SessionResponse":
        data = require_mapping(payload, "session")
        return cls(
            session_id=str(data.get("session_id", "")),
            device_id=str(data.get("device_id", "")),
            session_type=str(data.get("session_type", SessionType.DAILY_MONITORING.value)),
            start_time=str(data.get("start_time", "")),
            status=str(data.get("status", "")),
            user_id=optional_str(data.get("user_id")),
            end_time=optional_str(data.get("end_time")),
            data_points_collected=int(data.get("data_points_collected") or 0),
            average_wellness_score=optional_float(data.get("average_wellness_score")),
            summary=optional_str(data.get("summary")),
            metadata=freeze(dict(data.get("metadata") or {})),
        )

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "device_id": self.device_id,
            "user_id": self.user_id,
            "session_type": self.session_type,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status,
            "data_points_collected": self.data_points_collected,
            "average_wellness_score": self.average_wellness_score,
            "summary": self.summary,
            "metadata": thaw(self.metadata),
        }
