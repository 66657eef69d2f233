"""Simulated backend selectable in place of the real service.

``create_app`` serves the same ``/api/v1`` and ``/ws/stream`` surface as the
production backend from a seeded simulator, ``demo_transport`` mounts it
in-process for :class:`~vitalstream.client.BackendClient`, and
``demo_channel_factory`` feeds :class:`~vitalstream.stream.StreamSocket`
without a network.
"""
from __future__ import annotations

import asyncio
import json
import logging
import math
import random
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional

import httpx
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from vitalstream.models import DeviceType, SessionType

logger = logging.getLogger(__name__)

FEATURES = ("clarity", "ifrs", "timesystems", "lia")
CONDITIONS = ("normal", "stressed", "fatigued", "active")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def _quality_label(score: float) -> str:
    if score >= 0.9:
        return "excellent"
    if score >= 0.75:
        return "good"
    if score >= 0.5:
        return "fair"
    return "poor"


def _circadian_phase(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


class Simulator:
    """Generates plausible wearable readings and layer results."""

    def __init__(self, seed: Optional[int] = None, *, baseline_heart_rate: float = 75.0) -> None:
        self._rng = random.Random(seed)
        self.baseline_heart_rate = baseline_heart_rate

    def raw_signals(self) -> Dict[str, float]:
        variation = math.sin(time.time() / 10.0) * 10.0
        return {
            "heart_rate": round(self.baseline_heart_rate + variation + self._rng.random() * 5.0, 1),
            "spo2": round(self._rng.uniform(95.5, 99.5), 1),
            "temperature": round(self._rng.uniform(36.3, 37.1), 2),
            "activity": round(self._rng.uniform(0.0, 1.0), 2),
        }

    def snapshot(self) -> Dict[str, Any]:
        raw = self.raw_signals()
        quality = round(self._rng.uniform(0.6, 0.99), 3)
        heart_rate = raw["heart_rate"]
        lf, hf = self._rng.uniform(300, 900), self._rng.uniform(200, 800)
        wellness = round(100 * quality * (1.0 - abs(heart_rate - 70) / 200), 1)
        probabilities = self._probabilities()
        condition = max(probabilities, key=probabilities.get)
        now = datetime.now(timezone.utc)
        return {
            "timestamp": now.isoformat(timespec="milliseconds"),
            "raw_signals": raw,
            "clarity_layer": {
                "processed_data": raw,
                "quality_score": quality,
                "signal_to_noise_ratio": round(self._rng.uniform(8, 25), 2),
                "noise_reduction_applied": quality < 0.9,
                "quality_metrics": {
                    "heart_rate_quality": quality,
                    "spo2_quality": quality,
                    "temperature_quality": quality,
                    "activity_quality": quality,
                    "overall_quality": quality,
                },
                "quality_assessment": _quality_label(quality),
                "artifacts_detected": [] if quality > 0.75 else ["motion"],
                "processing_notes": "simulated",
            },
            "ifrs_layer": {
                "enhanced_data": raw,
                "dominant_frequency": round(heart_rate / 60.0, 3),
                "frequency_bands": {
                    "vlf": round(self._rng.uniform(100, 400), 1),
                    "lf": round(lf, 1),
                    "hf": round(hf, 1),
                    "lf_hf_ratio": round(lf / hf, 2),
                },
                "hrv_features": {
                    "rmssd": round(self._rng.uniform(20, 60), 1),
                    "sdnn": round(self._rng.uniform(30, 80), 1),
                    "pnn50": round(self._rng.uniform(5, 40), 1),
                    "hrv_score": round(self._rng.uniform(40, 95), 1),
                },
                "rhythm_classification": "elevated" if heart_rate > 100 else "normal_sinus",
                "respiratory_rate": round(self._rng.uniform(12, 18), 1),
                "frequency_stability": round(self._rng.uniform(0.7, 1.0), 2),
                "processing_notes": "simulated",
            },
            "timesystems_layer": {
                "synchronized_data": raw,
                "pattern_type": "stable",
                "temporal_consistency": round(self._rng.uniform(0.7, 1.0), 2),
                "circadian_phase": _circadian_phase(now.hour),
                "time_of_day_analysis": {"hour": now.hour},
                "pattern_recognition": {
                    "short_term_trend": "stable",
                    "long_term_trend": "stable",
                    "periodicity_detected": False,
                    "period_length_seconds": None,
                    "pattern_confidence": round(self._rng.uniform(0.5, 0.9), 2),
                },
                "circadian_alignment": {
                    "expected_heart_rate": self.baseline_heart_rate,
                    "actual_heart_rate": heart_rate,
                    "alignment_score": round(self._rng.uniform(0.6, 1.0), 2),
                    "phase_shift_minutes": round(self._rng.uniform(-30, 30), 1),
                },
                "rhythm_score": round(self._rng.uniform(60, 95), 1),
                "processing_notes": "simulated",
            },
            "lia_insights": {
                "condition": condition,
                "confidence": probabilities[condition],
                "wellness_score": wellness,
                "probabilities": probabilities,
                "recommendation": "Keep up your current routine.",
                "wellness_assessment": {
                    "cardiovascular_health": wellness,
                    "respiratory_health": round(self._rng.uniform(70, 95), 1),
                    "activity_level": round(raw["activity"] * 100, 1),
                    "stress_level": round(probabilities["stressed"] * 100, 1),
                    "overall_wellness": wellness,
                },
                "risk_factors": [],
                "positive_indicators": ["stable heart rate"],
            },
        }

    def battery_level(self) -> int:
        return self._rng.randint(60, 100)

    def _probabilities(self) -> Dict[str, float]:
        weights = [self._rng.random() + (2.0 if name == "normal" else 0.0) for name in CONDITIONS]
        total = sum(weights)
        return {name: round(weight / total, 3) for name, weight in zip(CONDITIONS, weights)}


class DemoBackend:
    """In-memory backend state: sessions, processing logs and the simulator."""

    def __init__(self, seed: Optional[int] = None, *, log_limit: int = 1000) -> None:
        self.simulator = Simulator(seed)
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.logs: Deque[Dict[str, Any]] = deque(maxlen=log_limit)
        self.connected_clients = 0

    def record(self, level: str, message: str, **data: Any) -> None:
        entry: Dict[str, Any] = {"timestamp": _now(), "level": level, "message": message}
        if data:
            entry["data"] = data
        self.logs.append(entry)

    def status(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": _now(),
            "services": {name: True for name in FEATURES},
            "connected_clients": self.connected_clients,
            "active_sessions": sum(1 for s in self.sessions.values() if s["status"] == "active"),
        }

    def stream(self) -> Dict[str, Any]:
        snapshot = self.simulator.snapshot()
        self.record(
            "INFO",
            "processed stream snapshot",
            quality=snapshot["clarity_layer"]["quality_score"],
            condition=snapshot["lia_insights"]["condition"],
        )
        for session in self.sessions.values():
            if session["status"] == "active":
                session["data_points_collected"] += 1
        return snapshot

    def connect(self, device_id: str, device_type: str, app_version: str, user_id: Optional[str]) -> Dict[str, Any]:
        self.record("INFO", "device connected", device_id=device_id, device_type=device_type, app_version=app_version)
        return {
            "success": True,
            "message": f"Device {device_id} connected",
            "session_id": uuid.uuid4().hex,
            "device_status": {
                "device_id": device_id,
                "is_connected": True,
                "battery_level": self.simulator.battery_level(),
                "signal_strength": -55,
                "firmware_version": "1.2.3",
                "last_updated": _now(),
            },
            "available_features": list(FEATURES),
        }

    def create_session(self, device_id: str, user_id: Optional[str], session_type: str) -> Dict[str, Any]:
        session_id = uuid.uuid4().hex
        session = {
            "session_id": session_id,
            "device_id": device_id,
            "user_id": user_id,
            "session_type": session_type,
            "start_time": _now(),
            "end_time": None,
            "status": "active",
            "data_points_collected": 0,
            "average_wellness_score": None,
            "summary": None,
            "metadata": {"source": "demo"},
        }
        self.sessions[session_id] = session
        self.record("INFO", "session created", session_id=session_id, session_type=session_type)
        return session

    def prediction(self) -> Dict[str, Any]:
        insights = self.simulator.snapshot()
        lia = insights["lia_insights"]
        return {
            "timestamp": insights["timestamp"],
            "condition": lia["condition"],
            "confidence": lia["confidence"],
            "wellness_score": lia["wellness_score"],
            "probabilities": lia["probabilities"],
            "signal_quality": insights["clarity_layer"]["quality_assessment"],
            "recommendation": lia["recommendation"],
            "metrics": dict(insights["raw_signals"]),
        }

    def layer_demo(self) -> Dict[str, Any]:
        snapshot = self.simulator.snapshot()
        return {
            "input": snapshot["raw_signals"],
            "layers": {
                "clarity": snapshot["clarity_layer"],
                "ifrs": snapshot["ifrs_layer"],
                "timesystems": snapshot["timesystems_layer"],
            },
            "output": snapshot["lia_insights"],
        }


class ConnectRequest(BaseModel):
    device_id: str
    device_type: DeviceType = DeviceType.MOBILE_APP
    app_version: str = "1.0.0"
    user_id: Optional[str] = None


class SessionRequest(BaseModel):
    device_id: str
    user_id: Optional[str] = None
    session_type: SessionType = SessionType.DAILY_MONITORING


def create_app(backend: Optional[DemoBackend] = None, *, stream_interval: float = 1.0) -> FastAPI:
    state = backend or DemoBackend()
    app = FastAPI(title="VitalStream demo backend", version="0.1.0")
    app.state.backend = state

    @app.get("/api/v1/health")
    async def health():
        return state.status()

    @app.post("/api/v1/connect")
    async def connect(request: ConnectRequest):
        return state.connect(request.device_id, request.device_type.value, request.app_version, request.user_id)

    @app.get("/api/v1/stream")
    async def stream():
        return state.stream()

    @app.get("/api/v1/predict")
    async def predict():
        return state.prediction()

    @app.post("/api/v1/sessions")
    async def create_session(request: SessionRequest):
        return state.create_session(request.device_id, request.user_id, request.session_type.value)

    @app.get("/api/v1/sessions/{session_id}")
    async def get_session(session_id: str):
        session = state.sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        return session

    @app.get("/api/v1/logs/processing")
    async def processing_logs(limit: int = Query(100, ge=1, le=1000)):
        logs = list(state.logs)[-limit:]
        return {"total": len(state.logs), "logs": logs}

    @app.get("/api/v1/demo/layers")
    async def layers():
        return state.layer_demo()

    async def _send_frames(ws: WebSocket) -> None:
        await ws.send_text(json.dumps({"type": "connection", "data": {"status": "connected"}}))
        while True:
            await ws.send_text(json.dumps({"type": "stream_data", "data": state.stream()}))
            await asyncio.sleep(stream_interval)

    @app.websocket("/ws/stream")
    async def stream_socket(ws: WebSocket):
        await ws.accept()
        state.connected_clients += 1
        sender = asyncio.create_task(_send_frames(ws))
        try:
            # Inbound frames are ignored; reading is how a disconnect is noticed.
            while True:
                await ws.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            state.connected_clients -= 1
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.debug("Demo stream sender ended with an error", exc_info=True)

    return app


def demo_transport(backend: Optional[DemoBackend] = None) -> httpx.ASGITransport:
    """Mount the demo app in-process for ``BackendClient(transport=...)``."""
    return httpx.ASGITransport(app=create_app(backend))


class DemoChannel:
    """Stream channel that emits simulated ``stream_data`` frames."""

    def __init__(self, backend: DemoBackend, *, interval: float = 1.0) -> None:
        self._backend = backend
        self._interval = interval
        self._closed = asyncio.Event()
        self._sent = 0

    async def receive(self) -> Optional[str]:
        if self._sent:
            try:
                await asyncio.wait_for(self._closed.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
        if self._closed.is_set():
            return None
        self._sent += 1
        return json.dumps({"type": "stream_data", "data": self._backend.stream()})

    async def close(self) -> None:
        self._closed.set()


def demo_channel_factory(backend: Optional[DemoBackend] = None, *, interval: float = 1.0):
    """Return a channel factory for ``StreamSocket(channel_factory=...)``."""
    state = backend or DemoBackend()

    async def _open(url: str) -> DemoChannel:
        logger.debug("Opening demo stream channel in place of %s", url)
        return DemoChannel(state, interval=interval)

    return _open


__all__ = [
    "DemoBackend",
    "DemoChannel",
    "Simulator",
    "create_app",
    "demo_channel_factory",
    "demo_transport",
]
