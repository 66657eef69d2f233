"""Backend API client for the wearable biosignal service."""
from __future__ import annotations

import logging
from urllib.parse import quote
from typing import Any, Callable, Optional, TypeVar

import httpx

from vitalstream.config import BackendConfig
from vitalstream.errors import BackendError, BackendProtocolError, BackendStatusError
from vitalstream.metrics import EventLog
from vitalstream.models import (
    ConnectionResponse,
    DeviceType,
    PredictionResponse,
    ProcessingLogPage,
    SessionResponse,
    SessionType,
    StreamSnapshot,
    SystemStatus,
)
from vitalstream.poller import ErrorCallback, SnapshotCallback, StreamPoller
from vitalstream.stream import BackoffPolicy, ChannelFactory, StreamSocket
from vitalstream.transport import RequestTransport

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

T = TypeVar("T")


class BackendClient:
    """Async client for the ``/api/v1`` endpoints and the stream socket.

    Use it as an async context manager, or call :meth:`open` and
    :meth:`close` explicitly. Each instance owns its HTTP client, its
    pollers and at most one stream socket; instances never share state.

    Example::

        async with BackendClient(BackendConfig.from_env()) as client:
            status = await client.check_health()
            if status is None:
                print("backend offline")
    """

    def __init__(
        self,
        config: Optional[BackendConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        channel_factory: Optional[ChannelFactory] = None,
        backoff: Optional[BackoffPolicy] = None,
        events: Optional[EventLog] = None,
    ) -> None:
        self.config = config or BackendConfig.from_env()
        self.events = events
        self._http = RequestTransport(self.config, transport=transport, events=events)
        self._channel_factory = channel_factory
        self._backoff = backoff
        self._socket: Optional[StreamSocket] = None
        self._pollers: list[StreamPoller] = []

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------
    async def open(self) -> None:
        await self._http.open()

    async def close(self) -> None:
        for poller in self._pollers:
            poller.stop()
        self._pollers.clear()
        await self.disconnect_stream()
        await self._http.close()

    async def __aenter__(self) -> "BackendClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    # ------------------------------------------------------------------
    # Health probe
    # ------------------------------------------------------------------
    async def check_health(self) -> Optional[SystemStatus]:
        """Return the backend status, or ``None`` when it is unreachable.

        Never raises for backend failures: timeouts, refused connections,
        non-2xx responses and undecodable bodies all yield ``None``.
        """
        try:
            response = await self._http.request("GET", f"{API_PREFIX}/health")
            if not response.is_success:
                logger.warning("Backend health check failed: %s %s", response.status_code, response.reason_phrase)
                if self.events is not None:
                    self.events.health_check(status_code=response.status_code, error=response.reason_phrase)
                return None
            status = SystemStatus.from_dict(response.json())
        except (BackendError, ValueError, TypeError) as exc:
            logger.warning("Backend health check failed: %s", exc)
            if self.events is not None:
                self.events.health_check(error=str(exc))
            return None
        if self.events is not None:
            self.events.health_check(status.status)
        return status

    # ------------------------------------------------------------------
    # One-shot calls
    # ------------------------------------------------------------------
    async def connect_device(
        self,
        device_id: str,
        device_type: DeviceType | str = DeviceType.MOBILE_APP,
        user_id: Optional[str] = None,
    ) -> ConnectionResponse:
        body = {
            "device_id": device_id,
            "device_type": DeviceType(device_type).value,
            "app_version": self.config.app_version,
            "user_id": user_id,
        }
        response = await self._http.request("POST", f"{API_PREFIX}/connect", json=body)
        connection = self._decode(response, "Connection", ConnectionResponse.from_dict)
        logger.info("Device %s registered, session %s", device_id, connection.session_id)
        return connection

    async def get_stream_data(self) -> StreamSnapshot:
        response = await self._http.request("GET", f"{API_PREFIX}/stream")
        return self._decode(response, "Stream data", StreamSnapshot.from_dict)

    async def get_prediction(self) -> PredictionResponse:
        response = await self._http.request("GET", f"{API_PREFIX}/predict")
        return self._decode(response, "Prediction", PredictionResponse.from_dict)

    async def create_session(
        self,
        device_id: str,
        user_id: Optional[str] = None,
        session_type: SessionType | str = SessionType.DAILY_MONITORING,
    ) -> SessionResponse:
        body = {
            "device_id": device_id,
            "user_id": user_id,
            "session_type": SessionType(session_type).value,
        }
        response = await self._http.request("POST", f"{API_PREFIX}/sessions", json=body)
        return self._decode(response, "Session creation", SessionResponse.from_dict)

    async def get_session(self, session_id: str) -> SessionResponse:
        response = await self._http.request("GET", f"{API_PREFIX}/sessions/{quote(session_id, safe='')}")
        return self._decode(response, "Get session", SessionResponse.from_dict)

    async def get_processing_logs(self, limit: int = 100) -> ProcessingLogPage:
        response = await self._http.request("GET", f"{API_PREFIX}/logs/processing", params={"limit": limit})
        return self._decode(response, "Get logs", ProcessingLogPage.from_dict)

    async def get_layer_demo(self) -> Any:
        response = await self._http.request("GET", f"{API_PREFIX}/demo/layers")
        return self._decode(response, "Layer demo", lambda payload: payload)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------
    def start_polling(
        self,
        on_data: SnapshotCallback,
        interval: float = 1.0,
        on_error: Optional[ErrorCallback] = None,
        *,
        runtime: Optional[float] = None,
    ) -> StreamPoller:
        """Start polling ``/stream``; call ``stop()`` on the result to end it."""
        poller = StreamPoller(
            self.get_stream_data,
            on_data,
            interval=interval,
            on_error=on_error,
            events=self.events,
        )
        self._pollers = [p for p in self._pollers if p.running]
        self._pollers.append(poller)
        return poller.start(runtime=runtime)

    def connect_stream(
        self,
        on_data: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
        on_close: Optional[Callable[[], Any]] = None,
    ) -> StreamSocket:
        if self._socket is None:
            self._socket = StreamSocket(
                self.config.stream_socket_url,
                policy=self._backoff,
                channel_factory=self._channel_factory,
                events=self.events,
                open_timeout=self.config.timeout,
            )
        self._socket.connect(on_data, on_error, on_close)
        return self._socket

    async def disconnect_stream(self) -> None:
        if self._socket is None:
            return
        try:
            await self._socket.disconnect()
        finally:
            self._socket = None

    @property
    def is_stream_connected(self) -> bool:
        return self._socket is not None and self._socket.is_connected

    # ------------------------------------------------------------------
    # Decoding helper
    # ------------------------------------------------------------------
    @staticmethod
    def _decode(response: httpx.Response, operation: str, build: Callable[[Any], T]) -> T:
        if not response.is_success:
            raise BackendStatusError(operation, response.status_code, response.reason_phrase)
        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendProtocolError(f"{operation} returned invalid JSON: {exc}") from exc
        try:
            return build(payload)
        except (TypeError, ValueError) as exc:
            raise BackendProtocolError(f"{operation} returned an unexpected payload: {exc}") from exc


__all__ = ["BackendClient", "API_PREFIX"]
