import copy
import operator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

FILTER_OPS = {
    "==": operator.eq,
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
}


@dataclass(frozen=True)
class Increment:
    """Field transform: add ``value`` to the stored number (missing counts as 0)."""

    value: int = 1


def merge_fields(current: Optional[dict], data: dict) -> dict:
    """Applies ``data`` on top of ``current`` the way a Firestore merge does."""
    result = dict(current or {})
    for key, value in data.items():
        if isinstance(value, Increment):
            existing = result.get(key)
            if isinstance(existing, (int, float)) and not isinstance(existing, bool):
                result[key] = existing + value.value
            else:
                result[key] = value.value
        else:
            result[key] = copy.deepcopy(value)
    return result


def health_document(environment: str) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": "ok",
        "environment": environment,
    }
