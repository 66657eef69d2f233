from __future__ import annotations

import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, List, Optional

logger = logging.getLogger(__name__)

LOW_BATTERY_THRESHOLD = 20.0
MAX_NOTIFICATIONS = 100


class NotificationKind(str, Enum):
    DEVICE = "device"
    SESSION = "session"
    SYSTEM = "system"


@dataclass(slots=True)
class Notification:
    id: int
    kind: NotificationKind
    title: str
    body: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "title": self.title,
            "body": self.body,
            "timestamp": self.timestamp.isoformat(timespec="seconds"),
            "read": self.read,
        }


Listener = Callable[[List[Notification]], None]


class NotificationCenter:
    """In-app notifications for connection and session events.

    Each center owns its own history and listeners. Listeners receive the
    newest-first list after every change.
    """

    def __init__(self, *, limit: int = MAX_NOTIFICATIONS) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self._items: Deque[Notification] = deque(maxlen=limit)
        self._listeners: List[Listener] = []
        self._ids = itertools.count(1)

    @property
    def notifications(self) -> List[Notification]:
        return list(reversed(self._items))

    @property
    def unread_count(self) -> int:
        return sum(1 for item in self._items if not item.read)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify(self, kind: NotificationKind | str, title: str, body: str) -> Notification:
        item = Notification(id=next(self._ids), kind=NotificationKind(kind), title=title, body=body)
        self._items.append(item)
        logger.info("NOTIFY %s: %s - %s", item.kind.value, title, body)
        self._publish()
        return item

    def device_disconnected(self, device: Optional[str] = None) -> Notification:
        subject = f"Your wearable {device}" if device else "Your wearable device"
        return self.notify(
            NotificationKind.DEVICE,
            "Device Disconnected",
            f"{subject} has lost connection. Attempting to reconnect...",
        )

    def device_reconnected(self, device: Optional[str] = None) -> Notification:
        subject = f"Your wearable {device}" if device else "Your wearable device"
        return self.notify(NotificationKind.DEVICE, "Device Connected", f"{subject} is streaming again.")

    def low_battery(self, battery_level: float) -> Optional[Notification]:
        """Notify when *battery_level* is under the low-battery threshold."""
        if battery_level >= LOW_BATTERY_THRESHOLD:
            return None
        return self.notify(
            NotificationKind.DEVICE,
            "Low Battery Warning",
            f"Your wearable device battery is at {battery_level:.0f}%. Please charge soon.",
        )

    def session_summary(self, duration_seconds: float, insights: int) -> Notification:
        minutes = int(duration_seconds // 60)
        return self.notify(
            NotificationKind.SESSION,
            "Session Complete",
            f"Your {minutes} minute session generated {insights} insights.",
        )

    def backend_unreachable(self, url: str) -> Notification:
        return self.notify(NotificationKind.SYSTEM, "Backend Offline", f"Could not reach {url}.")

    def mark_read(self, notification_id: int) -> bool:
        for item in self._items:
            if item.id == notification_id:
                item.read = True
                self._publish()
                return True
        return False

    def mark_all_read(self) -> None:
        for item in self._items:
            item.read = True
        self._publish()

    def clear(self) -> None:
        self._items.clear()
        self._publish()

    def _publish(self) -> None:
        snapshot = self.notifications
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # pragma: no cover - listener failure
                logger.exception("Notification listener raised")


__all__ = [
    "Notification",
    "NotificationCenter",
    "NotificationKind",
    "LOW_BATTERY_THRESHOLD",
]
