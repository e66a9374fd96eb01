from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from ..core.constants import ADJUSTMENT_FIELD_PREFIX, ALLOWANCE_FIELD_PREFIX


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value


def dump_json(value: Any) -> str:
    return json.dumps(to_jsonable(value), sort_keys=True, ensure_ascii=False)


def _is_numeric_key(key: str) -> bool:
    return (
        key == "basic_salary"
        or key.startswith(ALLOWANCE_FIELD_PREFIX)
        or key.startswith(ADJUSTMENT_FIELD_PREFIX)
        or key.endswith("_delta")
        or key.endswith("_delta_pct")
    )


def load_state(text: Optional[str]) -> dict[str, Any]:
    """Decode a stored state/delta object, restoring Decimal money values."""
    if not text:
        return {}
    data = json.loads(text) if isinstance(text, (str, bytes, bytearray)) else dict(text)
    out: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str) and _is_numeric_key(key):
            out[key] = Decimal(value)
        else:
            out[key] = value
    return out


def load_json(text: Optional[str]) -> dict[str, Any]:
    if not text:
        return {}
    if isinstance(text, (str, bytes, bytearray)):
        return json.loads(text)
    return dict(text)
