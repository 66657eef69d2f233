"""Client library for the wearable biosignal backend."""
from vitalstream.client import BackendClient
from vitalstream.config import BackendConfig, Platform, resolve_base_urls
from vitalstream.errors import (
    BackendError,
    BackendNetworkError,
    BackendProtocolError,
    BackendStatusError,
    BackendTimeoutError,
    StreamTransportError,
)
from vitalstream.poller import StreamPoller
from vitalstream.stream import BackoffPolicy, SocketState, StreamSocket

__version__ = "0.1.0"

__all__ = [
    "BackendClient",
    "BackendConfig",
    "BackendError",
    "BackendNetworkError",
    "BackendProtocolError",
    "BackendStatusError",
    "BackendTimeoutError",
    "BackoffPolicy",
    "Platform",
    "SocketState",
    "StreamPoller",
    "StreamSocket",
    "StreamTransportError",
    "resolve_base_urls",
]
