"""Shared serialization utilities for sinks.

Records go out in the same JSON-ready shape they are stored in.
"""

import json
from dataclasses import is_dataclass
from typing import Any

from coop_loans.store.codec import serialize_value, to_document

__all__ = ["serialize_value", "to_dict", "to_json"]


def to_dict(obj: Any) -> dict:
    """Convert a record (dataclass or dict) to a JSON-ready dict."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_document(obj)
    elif isinstance(obj, dict):
        return serialize_value(obj)
    else:
        return {"value": str(obj)}


def to_json(obj: Any, pretty: bool = False) -> str:
    """Serialize a record as one JSON document."""
    return json.dumps(to_dict(obj), indent=2 if pretty else None, ensure_ascii=False, default=str)
