from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .time import to_iso


def sanitize_for_json(value: Any) -> Any:
    """
    Convert common non-JSON types (datetimes, enums, dataclasses, objects with to_dict) to serializable forms.
    """
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    if isinstance(value, dict):
        return {str(k): sanitize_for_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_for_json(v) for v in value]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return sanitize_for_json(to_dict())
    if is_dataclass(value) and not isinstance(value, type):
        return sanitize_for_json(asdict(value))
    return value


def stable_json_dumps(obj: Any, *, indent: int | None = None) -> str:
    """
    Dump JSON with sort_keys=True and fixed separators to ensure stable output.
    """
    if indent is not None:
        return json.dumps(sanitize_for_json(obj), sort_keys=True, indent=indent, ensure_ascii=False)
    return json.dumps(sanitize_for_json(obj), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
