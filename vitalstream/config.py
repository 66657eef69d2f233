"""Backend endpoint configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping, Optional, Tuple


DEFAULT_TIMEOUT = 10.0
DEFAULT_APP_VERSION = "1.0.0"


class Platform(str, Enum):
    """Runtime the client is started from."""

    IOS = "ios"
    ANDROID = "android"
    DEFAULT = "default"


# Android emulators reach the host loopback through 10.0.2.2.
_HOSTS: Mapping[Platform, str] = {
    Platform.IOS: "localhost:8000",
    Platform.ANDROID: "10.0.2.2:8000",
    Platform.DEFAULT: "localhost:8000",
}


def resolve_base_urls(platform: Platform | str = Platform.DEFAULT) -> Tuple[str, str]:
    """Return the ``(http_url, ws_url)`` pair for *platform*."""
    host = _HOSTS[Platform(platform)]
    return f"http://{host}", f"ws://{host}"


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Immutable endpoint settings, resolved once at startup."""

    base_url: str
    ws_url: str
    timeout: float = DEFAULT_TIMEOUT
    app_version: str = DEFAULT_APP_VERSION

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        object.__setattr__(self, "ws_url", self.ws_url.rstrip("/"))

    @classmethod
    def for_platform(cls, platform: Platform | str = Platform.DEFAULT, **overrides) -> "BackendConfig":
        base_url, ws_url = resolve_base_urls(platform)
        return cls(base_url=base_url, ws_url=ws_url, **overrides)

    @classmethod
    def from_env(
        cls,
        platform: Platform | str = Platform.DEFAULT,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "BackendConfig":
        env = os.environ if environ is None else environ
        config = cls.for_platform(platform)
        timeout = env.get("VITALSTREAM_TIMEOUT")
        return replace(
            config,
            base_url=env.get("VITALSTREAM_API_URL") or config.base_url,
            ws_url=env.get("VITALSTREAM_WS_URL") or config.ws_url,
            timeout=float(timeout) if timeout else config.timeout,
            app_version=env.get("VITALSTREAM_APP_VERSION") or config.app_version,
        )

    @property
    def stream_socket_url(self) -> str:
        return f"{self.ws_url}/ws/stream"


__all__ = [
    "BackendConfig",
    "Platform",
    "resolve_base_urls",
    "DEFAULT_TIMEOUT",
    "DEFAULT_APP_VERSION",
]
