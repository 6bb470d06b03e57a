"""Cell coercion helpers shared by the store, the clients and the renderer."""
from __future__ import annotations

import math
from datetime import UTC, date, datetime
from typing import Any

LOVELACE_PER_ADA = 1_000_000


def to_str(value: object) -> str:
    """Safely coerce a cell value to a stripped string."""
    if value is None:
        return ""
    return str(value).strip()


def to_int(value: object, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))  # type: ignore[arg-type]
    except (ValueError, TypeError):
        return default


def to_float(value: object, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        v = float(value)  # type: ignore[arg-type]
    except (ValueError, TypeError):
        return default
    return v if math.isfinite(v) else default


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def lovelace_to_ada(value: Any) -> float:
    """Convert an on-chain base-unit amount (string or int) to ADA."""
    return to_float(value) / LOVELACE_PER_ADA


def iso_date(value: date | datetime | None) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def unix_to_date(ts: object) -> str:
    """Render a unix timestamp (seconds) as an ISO date in UTC."""
    seconds = to_float(ts, default=-1.0)
    if seconds < 0:
        return ""
    return datetime.fromtimestamp(seconds, tz=UTC).date().isoformat()


def format_cell(value: object) -> str:
    """Render a value for a persisted table cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(round(value, 6))
    return str(value)
