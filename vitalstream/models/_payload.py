"""Decoding helpers shared by the response models."""
from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Optional

from vitalstream.errors import BackendProtocolError


def require_mapping(payload: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise BackendProtocolError(f"{kind} payload must be a JSON object, got {type(payload).__name__}")
    return payload


def freeze(value: Any) -> Any:
    """Return a read-only view of nested JSON data."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze`, for JSON output."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [thaw(item) for item in value]
    return value


def mapping_field(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    if value is None:
        return MappingProxyType({})
    if not isinstance(value, Mapping):
        raise BackendProtocolError(f"field {key!r} must be an object")
    return freeze(value)


def optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise BackendProtocolError(f"expected a number, got {value!r}") from exc


def optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})
