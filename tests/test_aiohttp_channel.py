"""Tests for the aiohttp websocket channel."""
from __future__ import annotations

import asyncio
import json
import unittest
from types import SimpleNamespace
from typing import Any, List, Optional
from unittest.mock import patch

import aiohttp
from aiohttp import test_utils, web

from vitalstream.errors import StreamTransportError
from vitalstream.models import StreamSnapshot
from vitalstream.stream import AiohttpChannel, BackoffPolicy, StreamSocket


class _FakeSession:
    """Stands in for ``aiohttp.ClientSession`` when the handshake must fail."""

    instances: List["_FakeSession"] = []
    error: BaseException = aiohttp.ClientConnectionError("connection refused")
    delay: float = 0.0

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.closed = False
        _FakeSession.instances.append(self)

    async def ws_connect(self, url: str) -> Any:
        await asyncio.sleep(self.delay)
        raise self.error

    async def close(self) -> None:
        self.closed = True


class _FakeWebSocket:
    def __init__(self, message: Any, exception: Optional[BaseException] = None) -> None:
        self._message = message
        self._exception = exception
        self.closed = False

    async def receive(self) -> Any:
        return self._message

    def exception(self) -> Optional[BaseException]:
        return self._exception

    async def close(self) -> None:
        self.closed = True


class AiohttpChannelServerTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        async def stream(request: web.Request) -> web.WebSocketResponse:
            ws = web.WebSocketResponse()
            await ws.prepare(request)
            await ws.send_str(json.dumps({"type": "connection", "data": {"status": "connected"}}))
            await ws.send_bytes(json.dumps({"type": "stream_data", "data": {"timestamp": "srv-1"}}).encode())
            await ws.close()
            return ws

        app = web.Application()
        app.router.add_get("/ws/stream", stream)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()
        self.url = str(self.server.make_url("/ws/stream").with_scheme("ws"))

    async def asyncTearDown(self) -> None:
        await self.server.close()

    async def test_text_binary_and_close_frames(self) -> None:
        channel = await AiohttpChannel.open(self.url, timeout=2.0)
        try:
            first = await channel.receive()
            second = await channel.receive()
            third = await channel.receive()
        finally:
            await channel.close()

        self.assertEqual(json.loads(first)["type"], "connection")
        self.assertEqual(json.loads(second)["data"]["timestamp"], "srv-1")
        self.assertIsNone(third)

    async def test_stream_socket_uses_aiohttp_by_default(self) -> None:
        received: List[StreamSnapshot] = []
        socket = StreamSocket(self.url, policy=BackoffPolicy(initial=0.01, max_attempts=0), open_timeout=2.0)
        socket.connect(received.append)
        await asyncio.wait_for(socket.wait_closed(), timeout=5.0)

        self.assertEqual([snapshot.timestamp for snapshot in received], ["srv-1"])
        self.assertEqual(socket.messages_received, 2)


class AiohttpChannelFailureTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        _FakeSession.instances = []
        _FakeSession.error = aiohttp.ClientConnectionError("connection refused")
        _FakeSession.delay = 0.0

    async def test_refused_open_closes_owned_session(self) -> None:
        with patch.object(aiohttp, "ClientSession", _FakeSession):
            with self.assertRaises(StreamTransportError) as ctx:
                await AiohttpChannel.open("ws://backend.test/ws/stream")
        self.assertIn("connection refused", str(ctx.exception))
        self.assertEqual(len(_FakeSession.instances), 1)
        self.assertTrue(_FakeSession.instances[0].closed)

    async def test_stalled_handshake_times_out(self) -> None:
        _FakeSession.delay = 30.0
        with patch.object(aiohttp, "ClientSession", _FakeSession):
            with self.assertRaises(StreamTransportError) as ctx:
                await asyncio.wait_for(AiohttpChannel.open("ws://backend.test/ws/stream", timeout=0.05), timeout=2.0)
        self.assertIn("no handshake", str(ctx.exception))
        self.assertTrue(_FakeSession.instances[0].closed)

    async def test_shared_session_left_open(self) -> None:
        shared = _FakeSession()
        with self.assertRaises(StreamTransportError):
            await AiohttpChannel.open("ws://backend.test/ws/stream", session=shared)  # type: ignore[arg-type]
        self.assertFalse(shared.closed)

    async def test_error_frame_raises_and_close_releases_owned_session(self) -> None:
        session = _FakeSession()
        ws = _FakeWebSocket(SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=None), ConnectionResetError("reset by peer"))
        channel = AiohttpChannel(session, ws, owns_session=True)  # type: ignore[arg-type]

        with self.assertRaises(StreamTransportError) as ctx:
            await channel.receive()
        self.assertIn("reset by peer", str(ctx.exception))

        await channel.close()
        self.assertTrue(ws.closed)
        self.assertTrue(session.closed)

    async def test_close_frame_ends_stream(self) -> None:
        ws = _FakeWebSocket(SimpleNamespace(type=aiohttp.WSMsgType.CLOSED, data=None))
        channel = AiohttpChannel(_FakeSession(), ws, owns_session=False)  # type: ignore[arg-type]
        self.assertIsNone(await channel.receive())


if __name__ == "__main__":
    unittest.main()
