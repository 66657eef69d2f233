"""Tests for the simulated backend and the client running against it."""
from __future__ import annotations

import asyncio
import json
import unittest

from fastapi.testclient import TestClient

from vitalstream.client import BackendClient
from vitalstream.config import BackendConfig
from vitalstream.demo import DemoBackend, create_app, demo_channel_factory, demo_transport
from vitalstream.errors import BackendStatusError
from vitalstream.models import StreamSnapshot
from vitalstream.stream import BackoffPolicy, StreamSocket


class DemoApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = DemoBackend(seed=7)
        self.client = TestClient(create_app(self.backend, stream_interval=0.05))

    def test_health_reports_every_service(self) -> None:
        response = self.client.get("/api/v1/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "healthy")
        self.assertEqual(set(payload["services"]), {"clarity", "ifrs", "timesystems", "lia"})

    def test_connect_validates_device_type(self) -> None:
        ok = self.client.post("/api/v1/connect", json={"device_id": "band-1", "device_type": "watch"})
        self.assertEqual(ok.status_code, 200)
        self.assertTrue(ok.json()["success"])
        self.assertEqual(ok.json()["device_status"]["device_id"], "band-1")

        bad = self.client.post("/api/v1/connect", json={"device_id": "band-1", "device_type": "toaster"})
        self.assertEqual(bad.status_code, 422)

    def test_sessions_round_trip_and_unknown_is_404(self) -> None:
        created = self.client.post("/api/v1/sessions", json={"device_id": "band-1", "session_type": "sleep"}).json()
        self.assertEqual(created["status"], "active")
        self.client.get("/api/v1/stream")
        fetched = self.client.get(f"/api/v1/sessions/{created['session_id']}").json()
        self.assertEqual(fetched["data_points_collected"], 1)
        self.assertEqual(self.client.get("/api/v1/sessions/missing").status_code, 404)

    def test_logs_respect_limit(self) -> None:
        for _ in range(3):
            self.client.get("/api/v1/stream")
        payload = self.client.get("/api/v1/logs/processing", params={"limit": 2}).json()
        self.assertEqual(payload["total"], 3)
        self.assertEqual(len(payload["logs"]), 2)
        self.assertEqual(self.client.get("/api/v1/logs/processing", params={"limit": 0}).status_code, 422)

    def test_websocket_sends_connection_then_stream_frames(self) -> None:
        with self.client.websocket_connect("/ws/stream") as ws:
            first = json.loads(ws.receive_text())
            second = json.loads(ws.receive_text())
            self.assertEqual(self.backend.connected_clients, 1)
        self.assertEqual(first["type"], "connection")
        self.assertEqual(second["type"], "stream_data")
        self.assertIn("raw_signals", second["data"])


class DemoClientTest(unittest.IsolatedAsyncioTestCase):
    def _config(self) -> BackendConfig:
        return BackendConfig(base_url="http://demo.local", ws_url="ws://demo.local")

    async def test_client_round_trip_against_demo_app(self) -> None:
        backend = DemoBackend(seed=3)
        async with BackendClient(self._config(), transport=demo_transport(backend)) as client:
            status = await client.check_health()
            self.assertTrue(status.is_healthy)

            connection = await client.connect_device("band-9", "band", "user-1")
            self.assertTrue(connection.success)
            self.assertIsNotNone(connection.device_status.battery_level)

            snapshot = await client.get_stream_data()
            self.assertIsInstance(snapshot, StreamSnapshot)
            self.assertIsNotNone(snapshot.signal("heart_rate"))
            self.assertIn(snapshot.condition, ("normal", "stressed", "fatigued", "active"))

            prediction = await client.get_prediction()
            self.assertEqual(prediction.condition, max(prediction.probabilities, key=prediction.probabilities.get))

            session = await client.create_session("band-9", "user-1", "workout")
            again = await client.get_session(session.session_id)
            self.assertEqual(again.session_type, "workout")

            page = await client.get_processing_logs(limit=2)
            self.assertEqual(len(page.logs), 2)

            layers = await client.get_layer_demo()
            self.assertEqual(set(layers["layers"]), {"clarity", "ifrs", "timesystems"})

            with self.assertRaises(BackendStatusError) as ctx:
                await client.get_session("missing")
            self.assertEqual(ctx.exception.status_code, 404)

    async def test_stream_socket_over_demo_channel(self) -> None:
        backend = DemoBackend(seed=5)
        received = []
        got_two = asyncio.Event()

        def on_data(snapshot: StreamSnapshot) -> None:
            received.append(snapshot)
            if len(received) >= 2:
                got_two.set()

        socket = StreamSocket(
            "ws://demo.local/ws/stream",
            policy=BackoffPolicy(initial=0.01),
            channel_factory=demo_channel_factory(backend, interval=0.01),
        )
        socket.connect(on_data)
        await asyncio.wait_for(got_two.wait(), timeout=2.0)
        self.assertTrue(socket.is_connected)
        await socket.disconnect()
        self.assertFalse(socket.is_connected)
        self.assertGreaterEqual(len(backend.logs), 2)


if __name__ == "__main__":
    unittest.main()
