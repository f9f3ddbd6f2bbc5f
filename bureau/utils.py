"""Shared utility functions used across Bureau modules."""
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def round_money(value: float | None) -> float | None:
    if value is None:
        return None
    return round(float(value), 2)


def money(value: float | None) -> float:
    """Coerce a nullable amount to a float, treating NULL as zero."""
    return float(value) if value else 0.0


def iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def bump_version(obj) -> None:
    """Advance the optimistic-concurrency counter on a Deal or Project."""
    obj.version = (obj.version or 0) + 1


def compute_commission(base: float | None, percentage: float | None, supplied: float | None) -> float | None:
    """A non-zero supplied amount wins; otherwise ``base * percentage / 100``."""
    if supplied:
        return round_money(supplied)
    if base is None or percentage is None:
        return None
    return round_money(base * percentage / 100)
