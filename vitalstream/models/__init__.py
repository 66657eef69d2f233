"""Value objects decoded from backend responses.

Every model is an immutable snapshot built per request or per socket frame
with ``from_dict``; nothing here is cached or merged across calls.
"""
from .connection import ConnectionResponse, DeviceStatus, DeviceType
from .prediction import PredictionResponse
from .processing_log import ProcessingLog, ProcessingLogPage
from .session import SessionResponse, SessionType
from .stream_snapshot import StreamSnapshot
from .system_status import SystemStatus

__all__ = [
    "ConnectionResponse",
    "DeviceStatus",
    "DeviceType",
    "PredictionResponse",
    "ProcessingLog",
    "ProcessingLogPage",
    "SessionResponse",
    "SessionType",
    "StreamSnapshot",
    "SystemStatus",
]
