"""Conversion between entity dataclasses and store documents.

Documents hold only JSON-compatible values: Decimals as strings, enums as
their value, dates and timestamps as ISO-8601 strings.
"""

import types
import typing
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

T = TypeVar("T")


def serialize_value(value: Any) -> Any:
    """Serialize a value for storage."""
    if isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, date):
        return value.isoformat()
    elif is_dataclass(value) and not isinstance(value, type):
        return to_document(value)
    elif isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def to_document(obj: Any) -> dict[str, Any]:
    """Convert a dataclass instance into a store document."""
    return {f.name: serialize_value(getattr(obj, f.name)) for f in fields(obj)}


def normalize_timestamp(value: Any) -> datetime | None:
    """Coerce the timestamp shapes found in stored documents to a naive datetime.

    Accepts datetimes, ISO-8601 strings (``Z`` suffix included), epoch
    milliseconds, and provider timestamp objects exposing ``to_datetime()``
    or ``seconds``/``nanoseconds``. Aware values are converted to local time.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime.combine(value, datetime.min.time())
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        result = datetime.fromisoformat(text)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        result = datetime.fromtimestamp(value / 1000)
    elif hasattr(value, "to_datetime"):
        result = value.to_datetime()
    elif hasattr(value, "seconds"):
        nanos = getattr(value, "nanoseconds", 0) or 0
        result = datetime.fromtimestamp(value.seconds + nanos / 1e9)
    else:
        raise ValueError(f"Cannot interpret {value!r} as a timestamp")

    if result.tzinfo is not None:
        result = result.astimezone().replace(tzinfo=None)
    return result


def _normalize_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) == 10:
        return date.fromisoformat(value)
    return normalize_timestamp(value).date()


def _unwrap_optional(tp: Any) -> Any:
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
        # Mixed unions (e.g. Decimal | str) are kept as stored
        return Any
    return tp


def _coerce(tp: Any, value: Any) -> Any:
    if value is None:
        return None

    tp = _unwrap_optional(tp)
    origin = typing.get_origin(tp)

    if tp is Any:
        return value
    if origin is list:
        (item_type,) = typing.get_args(tp) or (Any,)
        return [_coerce(item_type, v) for v in value]
    if origin is dict or tp is dict:
        return dict(value)
    if isinstance(tp, type):
        if issubclass(tp, Enum):
            return tp(value)
        if tp is Decimal:
            return Decimal(str(value))
        if tp is datetime:
            return normalize_timestamp(value)
        if tp is date:
            return _normalize_date(value)
        if tp is bool:
            return bool(value)
        if tp is int:
            return int(value)
        if is_dataclass(tp):
            return from_document(tp, value)
    return value


def from_document(cls: type[T], data: dict[str, Any]) -> T:
    """Build an entity dataclass from a store document.

    Keys that are not fields of ``cls`` are ignored; missing optional fields
    take their defaults.
    """
    hints = typing.get_type_hints(cls)
    kwargs = {}
    for f in fields(cls):
        if f.name in data:
            kwargs[f.name] = _coerce(hints[f.name], data[f.name])
    return cls(**kwargs)
