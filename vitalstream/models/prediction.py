from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from ._payload import empty_mapping, freeze, require_mapping


@dataclass(frozen=True, slots=True)
class PredictionResponse:
    timestamp: str
    condition: str
    confidence: float
    wellness_score: float
    signal_quality: str
    recommendation: str = ""
    probabilities: Mapping[str, float] = field(default_factory=empty_mapping)
    metrics: Mapping[str, float] = field(default_factory=empty_mapping)

    @classmethod
    def from_dict(cls, payload: Any) -> "PredictionResponse":
        data = require_mapping(payload, "prediction")
        return cls(
            timestamp=str(data.get("timestamp", "")),
            condition=str(data.get("condition", "unknown")),
            confidence=float(data.get("confidence") or 0.0),
            wellness_score=float(data.get("wellness_score") or 0.0),
            signal_quality=str(data.get("signal_quality", "")),
            recommendation=str(data.get("recommendation", "")),
            probabilities=freeze({str(k): float(v) for k, v in dict(data.get("probabilities") or {}).items()}),
            metrics=freeze({str(k): float(v) for k, v in dict(data.get("metrics") or {}).items()}),
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "condition": self.condition,
            "confidence": self.confidence,
            "wellness_score": self.wellness_score,
            "signal_quality": self.signal_quality,
            "recommendation": self.recommendation,
            "probabilities": dict(self.probabilities),
            "metrics": dict(self.metrics),
        }
