"""CSV event log for backend client activity."""
from __future__ import annotations

import csv
import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

COLUMNS: Sequence[str] = ("timestamp", "event", "status", "value", "message", "extra")


class SocketEvent(str, Enum):
    OPEN = "ws_open"
    CLOSE = "ws_close"
    ERROR = "ws_error"
    RECONNECT = "ws_reconnect"


class EventLog:
    """One CSV row per request, health probe, poll sample and socket transition.

    ``value`` holds the figure that matters for the event: elapsed seconds for
    a request, the HTTP status of a failed probe, the backoff delay of a
    reconnect. Every row is flushed when written. A row that cannot be
    written is reported at debug level and never reaches the caller.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        static_extra: Mapping[str, Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.path = Path(path)
        self.static_extra = dict(static_extra or {})
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists() or self.path.stat().st_size == 0:
            self._append(COLUMNS)

    # ------------------------------------------------------------------
    # Client events
    # ------------------------------------------------------------------
    def http_request(
        self,
        method: str,
        url: str,
        elapsed: float,
        *,
        status_code: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        extra: dict[str, Any] = {"method": method, "url": url}
        if status_code is not None:
            extra["status_code"] = status_code
        if error is not None:
            extra["exception"] = type(error).__name__
        self.record(
            "http_request",
            status="error" if error is not None else "ok",
            value=round(elapsed, 6),
            message=str(error) if error is not None else None,
            extra=extra,
        )

    def health_check(
        self,
        backend_status: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        if backend_status is not None:
            self.record("health_check", status="ok", extra={"backend_status": backend_status})
        else:
            self.record("health_check", status="error", value=status_code, message=error)

    def poll_started(self, interval: float) -> None:
        self.record("poll_start", status="ok", extra={"interval": interval})

    def poll_sample(self, timestamp: Optional[str] = None, *, error: Optional[BaseException] = None) -> None:
        if error is not None:
            self.record("poll_sample", status="error", message=str(error))
        else:
            self.record("poll_sample", status="ok", extra={"timestamp": timestamp})

    def poll_stopped(self, fetches: int, errors: int) -> None:
        self.record("poll_stop", status="ok", extra={"fetches": fetches, "errors": errors})

    def socket_event(
        self,
        kind: SocketEvent,
        url: str,
        *,
        attempt: Optional[int] = None,
        delay: Optional[float] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        extra: dict[str, Any] = {"url": url}
        if attempt is not None:
            extra["attempt"] = attempt
        if kind is SocketEvent.ERROR:
            status = "error"
        elif kind is SocketEvent.RECONNECT:
            status = "pending"
        else:
            status = "ok"
        self.record(
            kind.value,
            status=status,
            value=delay,
            message=str(error) if error is not None else None,
            extra=extra,
        )

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------
    def record(
        self,
        event: str,
        *,
        status: Optional[str] = None,
        value: Optional[float] = None,
        message: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        merged = {**self.static_extra, **(extra or {})}
        row = (
            self._stamp(),
            event,
            status or "",
            "" if value is None else value,
            message or "",
            json.dumps(merged, separators=(",", ":"), sort_keys=True, default=str) if merged else "",
        )
        try:
            self._append(row)
        except OSError:
            logger.debug("Could not write %s row to %s", event, self.path, exc_info=True)

    def _stamp(self) -> str:
        moment = self._clock()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")

    def _append(self, row: Sequence[Any]) -> None:
        with self._lock, self.path.open("a", newline="", encoding="utf-8") as handle:
            csv.writer(handle).writerow(row)
            handle.flush()


__all__ = ["COLUMNS", "EventLog", "SocketEvent"]
