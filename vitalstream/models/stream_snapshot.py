from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from ._payload import freeze, mapping_field, require_mapping, thaw

LAYER_FIELDS = ("clarity_layer", "ifrs_layer", "timesystems_layer")


@dataclass(frozen=True, slots=True)
class StreamSnapshot:
    """One backend snapshot: raw signals plus every derived layer result.

    The nested layer records are passed through untouched; the client never
    interprets them beyond handing them to a renderer.
    """

    timestamp: str
    raw_signals: Mapping[str, Any]
    clarity_layer: Mapping[str, Any]
    ifrs_layer: Mapping[str, Any]
    timesystems_layer: Mapping[str, Any]
    lia_insights: Mapping[str, Any]
    raw: Mapping[str, Any] = field(repr=False, compare=False, default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Any) -> "StreamSnapshot":
        data = require_mapping(payload, "stream snapshot")
        return cls(
            timestamp=str(data.get("timestamp", "")),
            raw_signals=mapping_field(data, "raw_signals"),
            clarity_layer=mapping_field(data, "clarity_layer"),
            ifrs_layer=mapping_field(data, "ifrs_layer"),
            timesystems_layer=mapping_field(data, "timesystems_layer"),
            lia_insights=mapping_field(data, "lia_insights"),
            raw=freeze(data),
        )

    def signal(self, name: str) -> Optional[float]:
        value = self.raw_signals.get(name)
        return float(value) if isinstance(value, (int, float)) else None

    @property
    def condition(self) -> Optional[str]:
        return self.lia_insights.get("condition")

    @property
    def wellness_score(self) -> Optional[float]:
        value = self.lia_insights.get("wellness_score")
        return float(value) if isinstance(value, (int, float)) else None

    def to_dict(self) -> Dict[str, Any]:
        return thaw(self.raw)
