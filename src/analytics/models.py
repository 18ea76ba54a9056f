"""Value objects for the worker hierarchy and its derived analytics views."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Sequence

__all__ = [
    "DateRange",
    "FilterOptions",
    "HierarchyNode",
    "HierarchyStats",
    "LocationInfo",
    "MostProductiveWorker",
    "PerformanceBand",
    "PerformanceMetrics",
    "PerformanceRange",
    "Trend",
    "WorkerRole",
]


class WorkerRole(str, Enum):
    """Materialized tiers of the organization, root to leaf.

    Citizens (``ciudadanos``) sit below ``MOVILIZADOR`` and are only counted.
    """

    LIDER = "lider"
    BRIGADISTA = "brigadista"
    MOVILIZADOR = "movilizador"

    @property
    def depth(self) -> int:
        return _ROLE_DEPTH[self]


_ROLE_DEPTH: dict[WorkerRole, int] = {
    WorkerRole.LIDER: 0,
    WorkerRole.BRIGADISTA: 1,
    WorkerRole.MOVILIZADOR: 2,
}


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class PerformanceBand(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"


@dataclass(frozen=True, slots=True)
class LocationInfo:
    """Partial address copied verbatim from the source record."""

    region: str | None = None  # entidad
    sub_region: str | None = None  # municipio
    sector: str | None = None  # seccion
    locality: str | None = None  # colonia
    postal_code: str | None = None  # codigo_postal

    def populated_values(self) -> list[str]:
        values = (self.region, self.sub_region, self.sector, self.locality, self.postal_code)
        return [value for value in values if value]

    def to_dict(self) -> dict[str, str | None]:
        return {
            "region": self.region,
            "subRegion": self.sub_region,
            "sector": self.sector,
            "locality": self.locality,
            "postalCode": self.postal_code,
        }


@dataclass(frozen=True, slots=True)
class PerformanceMetrics:
    registered_count: int
    verification_rate: float
    data_completeness: float
    trend: Trend
    last_activity: datetime
    ranking: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "registeredCount": self.registered_count,
            "verificationRate": self.verification_rate,
            "dataCompleteness": self.data_completeness,
            "ranking": self.ranking,
            "trend": self.trend.value,
            "lastActivity": self.last_activity.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class HierarchyNode:
    """One materialized worker of the hierarchy with its derived metrics.

    ``registered_count`` always equals the number of citizen records reachable
    below the node. ``level`` is the zero-based depth in the tree.
    """

    id: str
    name: str
    role: WorkerRole
    registered_count: int
    location: LocationInfo
    performance: PerformanceMetrics
    is_active: bool
    last_activity: datetime
    children: tuple["HierarchyNode", ...] = ()
    parent_id: str | None = None
    level: int = 0

    def with_ranking(self, ranking: int) -> "HierarchyNode":
        return replace(self, performance=replace(self.performance, ranking=ranking))

    def with_level(self, level: int) -> "HierarchyNode":
        if self.level == level:
            return self
        return replace(self, level=level)

    def to_dict(self, *, include_children: bool = True) -> dict[str, Any]:
        """Serialise to the camelCase shape consumed by the dashboard UI."""
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "registeredCount": self.registered_count,
            "location": self.location.to_dict(),
            "performance": self.performance.to_dict(),
            "parentId": self.parent_id,
            "isActive": self.is_active,
            "lastActivity": self.last_activity.isoformat(),
            "level": self.level,
            "children": (
                [child.to_dict() for child in self.children] if include_children else []
            ),
        }


@dataclass(frozen=True, slots=True)
class MostProductiveWorker:
    id: str = ""
    name: str = ""
    role: str = ""
    ciudadanos: int = 0


@dataclass(frozen=True, slots=True)
class HierarchyStats:
    total_lideres: int
    total_brigadistas: int
    total_movilizadores: int
    total_ciudadanos: int
    average_ciudadanos_por_lider: float
    average_ciudadanos_por_brigadista: float
    average_ciudadanos_por_movilizador: float
    deepest_level: int
    most_productive_worker: MostProductiveWorker = field(default_factory=MostProductiveWorker)

    @property
    def total_trabajadores(self) -> int:
        return self.total_lideres + self.total_brigadistas + self.total_movilizadores

    def to_dict(self) -> dict[str, Any]:
        worker = self.most_productive_worker
        return {
            "totalLideres": self.total_lideres,
            "totalBrigadistas": self.total_brigadistas,
            "totalMovilizadores": self.total_movilizadores,
            "totalCiudadanos": self.total_ciudadanos,
            "averageCiudadanosPorLider": self.average_ciudadanos_por_lider,
            "averageCiudadanosPorBrigadista": self.average_ciudadanos_por_brigadista,
            "averageCiudadanosPorMovilizador": self.average_ciudadanos_por_movilizador,
            "deepestLevel": self.deepest_level,
            "mostProductiveWorker": {
                "id": worker.id,
                "name": worker.name,
                "role": worker.role,
                "ciudadanos": worker.ciudadanos,
            },
        }


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass(frozen=True, slots=True)
class DateRange:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if _as_utc(self.end) < _as_utc(self.start):
            raise ValueError("DateRange end must not be earlier than start")

    def contains(self, moment: datetime) -> bool:
        """Inclusive on both ends; naive bounds are read as UTC."""
        return _as_utc(self.start) <= _as_utc(moment) <= _as_utc(self.end)


@dataclass(frozen=True, slots=True)
class PerformanceRange:
    min: float = 0.0
    max: float = 100.0

    def __post_init__(self) -> None:
        if self.max < self.min:
            raise ValueError("PerformanceRange max must not be lower than min")

    def contains(self, score: float) -> bool:
        return self.min <= score <= self.max


@dataclass(frozen=True, slots=True)
class FilterOptions:
    """Request shape shared by every hierarchy and analytics query.

    ``regions`` is an OR-match on the leader's ``entidad`` and is pushed down
    to the gateway; every other option narrows flattened views only.
    """

    regions: tuple[str, ...] = ()
    active_only: bool = False
    date_range: DateRange | None = None
    roles: tuple[WorkerRole, ...] = ()
    performance_range: PerformanceRange | None = None
    search_term: str | None = None

    def __init__(
        self,
        *,
        regions: Iterable[str] | None = None,
        active_only: bool = False,
        date_range: DateRange | None = None,
        roles: Iterable[WorkerRole | str] | None = None,
        performance_range: PerformanceRange | None = None,
        search_term: str | None = None,
    ) -> None:
        object.__setattr__(self, "regions", tuple(regions or ()))
        object.__setattr__(self, "active_only", bool(active_only))
        object.__setattr__(self, "date_range", date_range)
        object.__setattr__(self, "roles", tuple(WorkerRole(role) for role in roles or ()))
        object.__setattr__(self, "performance_range", performance_range)
        object.__setattr__(self, "search_term", search_term)

    @property
    def has_node_predicates(self) -> bool:
        return bool(
            self.active_only
            or self.date_range is not None
            or self.roles
            or self.performance_range is not None
            or self.search_term
        )

    def cache_key(self) -> str:
        """Canonical serialisation: sorted keys and order-insensitive sets."""
        payload: dict[str, Any] = {
            "active_only": self.active_only,
            "date_range": (
                None
                if self.date_range is None
                else [self.date_range.start.isoformat(), self.date_range.end.isoformat()]
            ),
            "performance_range": (
                None
                if self.performance_range is None
                else [self.performance_range.min, self.performance_range.max]
            ),
            "regions": sorted(set(self.regions)),
            "roles": sorted({role.value for role in self.roles}),
            "search_term": self.search_term,
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))

    def gateway_regions(self) -> Sequence[str] | None:
        return sorted(set(self.regions)) or None
