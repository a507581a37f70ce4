"""JSON helpers for published events and status dicts.

Events carry numpy scalars, frozen dataclasses and tuples, and analysis can
produce non-finite floats.  ``sanitize_for_json`` turns all of that into plain
Python that ``json.dumps(allow_nan=False)`` accepts.
"""

from __future__ import annotations

import dataclasses
import enum
import json
import math
from typing import Any

import numpy as np

__all__ = [
    "safe_json_dumps",
    "sanitize_for_json",
]


def _clean(value: Any, non_finite: list[bool]) -> Any:
    if isinstance(value, np.ndarray):
        value = value.tolist()
    elif isinstance(value, np.generic):
        value = value.item()
    elif isinstance(value, enum.Enum):
        value = value.value
    elif dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}

    if isinstance(value, float):
        if math.isfinite(value):
            return value
        non_finite[0] = True
        return None
    if isinstance(value, dict):
        return {str(k): _clean(v, non_finite) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clean(item, non_finite) for item in value]
    return value


def sanitize_for_json(obj: Any) -> tuple[Any, bool]:
    """Return ``(cleaned, found_non_finite)``.

    NaN and ±Inf become ``None``; numpy values, enums and dataclasses become
    their plain-Python equivalents.
    """
    non_finite = [False]
    cleaned = _clean(obj, non_finite)
    return cleaned, non_finite[0]


def safe_json_dumps(value: Any) -> str:
    """Sanitise *value* and serialise to a compact JSON string."""
    cleaned, _ = sanitize_for_json(value)
    return json.dumps(cleaned, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
