"""Per-node performance metrics derived from a single source record.

Every function is pure: time-dependent results take ``now`` explicitly so a
fixed clock reproduces them exactly.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from src.analytics.models import PerformanceMetrics, Trend

# Each present, non-blank field contributes 10 points.
COMPLETENESS_FIELDS: tuple[str, ...] = (
    "nombre",
    "clave_electoral",
    "curp",
    "direccion",
    "colonia",
    "codigo_postal",
    "seccion",
    "entidad",
    "municipio",
    "numero_cel",
)

TREND_UP_DAYS = 7
TREND_DOWN_DAYS = 30
ACTIVITY_WINDOW_DAYS = 90

_ONE_DAY = timedelta(days=1)


def parse_timestamp(value: Any) -> datetime:
    """Coerce ``created_at`` into an aware datetime; naive values are UTC."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def elapsed_days(created_at: datetime, now: datetime) -> int:
    """Whole days between ``created_at`` and ``now`` (floored)."""
    return (now - created_at) // _ONE_DAY


def calculate_verification_rate(record: Mapping[str, Any]) -> float:
    """100 when the record is flagged verified, otherwise 0.

    This is a binary proxy, not a rate over a population.
    """
    return 100.0 if bool(record.get("num_verificado")) else 0.0


def _is_filled(value: Any) -> bool:
    if value is None:
        return False
    return str(value).strip() != ""


def calculate_data_completeness(record: Mapping[str, Any]) -> float:
    completed = sum(1 for name in COMPLETENESS_FIELDS if _is_filled(record.get(name)))
    return completed * 100.0 / len(COMPLETENESS_FIELDS)


def calculate_trend(created_at: datetime, *, now: datetime) -> Trend:
    """Elapsed-time heuristic: recent records trend up, old ones down."""
    days = elapsed_days(created_at, now)
    if days < TREND_UP_DAYS:
        return Trend.UP
    if days > TREND_DOWN_DAYS:
        return Trend.DOWN
    return Trend.STABLE


def is_worker_active(created_at: datetime, *, now: datetime) -> bool:
    return elapsed_days(created_at, now) <= ACTIVITY_WINDOW_DAYS


def calculate_performance_metrics(
    record: Mapping[str, Any],
    *,
    registered_count: int,
    created_at: datetime,
    now: datetime,
) -> PerformanceMetrics:
    return PerformanceMetrics(
        registered_count=registered_count,
        verification_rate=calculate_verification_rate(record),
        data_completeness=calculate_data_completeness(record),
        trend=calculate_trend(created_at, now=now),
        last_activity=created_at,
    )


__all__ = [
    "ACTIVITY_WINDOW_DAYS",
    "COMPLETENESS_FIELDS",
    "TREND_DOWN_DAYS",
    "TREND_UP_DAYS",
    "calculate_data_completeness",
    "calculate_performance_metrics",
    "calculate_trend",
    "calculate_verification_rate",
    "elapsed_days",
    "is_worker_active",
    "parse_timestamp",
]
