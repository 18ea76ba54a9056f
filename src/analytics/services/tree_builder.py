"""Turn nested gateway rows into a typed three-level hierarchy.

Input shape (one entry per leader)::

    {"id": ..., "nombre": ..., "created_at": ..., "brigadistas": [
        {..., "movilizadores": [
            {..., "ciudadanos": [{...}, ...]},
        ]},
    ]}

Citizen rows are counted, never materialized as nodes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Sequence, cast

import structlog

from src.analytics.errors import BuildError
from src.analytics.models import HierarchyNode, LocationInfo, WorkerRole
from src.analytics.services.metrics import (
    calculate_performance_metrics,
    is_worker_active,
    parse_timestamp,
)

LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _Level:
    role: WorkerRole
    children_key: str


# Index i describes depth i; the last level's children are citizen rows.
_LEVELS: tuple[_Level, ...] = (
    _Level(WorkerRole.LIDER, "brigadistas"),
    _Level(WorkerRole.BRIGADISTA, "movilizadores"),
    _Level(WorkerRole.MOVILIZADOR, "ciudadanos"),
)
_LEAF_DEPTH = len(_LEVELS) - 1


def build_hierarchy(rows: Sequence[Mapping[str, Any]], *, now: datetime) -> list[HierarchyNode]:
    """Build the leader forest from nested rows.

    Raises:
        BuildError: when any record is malformed. No partial tree is returned.
    """
    if not isinstance(rows, (list, tuple)):
        raise BuildError(
            f"Hierarchy rows must be a list, got {type(rows).__name__}", path="$"
        )
    tree = [
        _build_node(record, depth=0, parent_id=None, path=f"$[{index}]", now=now)
        for index, record in enumerate(rows)
    ]
    LOGGER.debug("hierarchy.build.done", roots=len(tree))
    return tree


def _build_node(
    record: Any,
    *,
    depth: int,
    parent_id: str | None,
    path: str,
    now: datetime,
) -> HierarchyNode:
    level = _LEVELS[depth]
    source = _require_mapping(record, path)
    node_id = _require_text(source, "id", path)
    name = _require_text(source, "nombre", path)
    created_at = _require_timestamp(source, path)
    raw_children = _children_of(source, level.children_key, path)

    if depth == _LEAF_DEPTH:
        children: tuple[HierarchyNode, ...] = ()
    else:
        children = tuple(
            _build_node(
                child,
                depth=depth + 1,
                parent_id=node_id,
                path=f"{path}.{level.children_key}[{index}]",
                now=now,
            )
            for index, child in enumerate(raw_children)
        )

    # Counted from the raw leaf collections, not from the children's totals.
    registered = _count_leaves(source, depth)

    return HierarchyNode(
        id=node_id,
        name=name,
        role=level.role,
        registered_count=registered,
        location=_extract_location(source),
        performance=calculate_performance_metrics(
            source, registered_count=registered, created_at=created_at, now=now
        ),
        is_active=is_worker_active(created_at, now=now),
        last_activity=created_at,
        children=children,
        parent_id=parent_id,
        level=depth,
    )


def _count_leaves(source: Mapping[str, Any], depth: int) -> int:
    collection = source.get(_LEVELS[depth].children_key) or ()
    if depth == _LEAF_DEPTH:
        return len(collection)
    return sum(_count_leaves(cast(Mapping[str, Any], child), depth + 1) for child in collection)


def _require_mapping(record: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(record, Mapping):
        raise BuildError(f"Record at {path} is not an object", path=path)
    return cast(Mapping[str, Any], record)


def _require_text(source: Mapping[str, Any], key: str, path: str) -> str:
    value = source.get(key)
    if value is None or isinstance(value, bool):
        raise BuildError(f"Record at {path} is missing '{key}'", path=path)
    text = str(value)
    if not text.strip():
        raise BuildError(f"Record at {path} has a blank '{key}'", path=path)
    return text


def _require_timestamp(source: Mapping[str, Any], path: str) -> datetime:
    try:
        return parse_timestamp(source.get("created_at"))
    except ValueError as exc:
        raise BuildError(
            f"Record at {path} has an invalid 'created_at'", path=path, cause=exc
        ) from exc


def _children_of(source: Mapping[str, Any], key: str, path: str) -> Sequence[Any]:
    value = source.get(key)
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise BuildError(f"'{key}' at {path} must be a list", path=f"{path}.{key}")
    return cast(Sequence[Any], value)


def _extract_location(source: Mapping[str, Any]) -> LocationInfo:
    def _opt(key: str) -> str | None:
        value = source.get(key)
        return None if value is None else str(value)

    return LocationInfo(
        region=_opt("entidad"),
        sub_region=_opt("municipio"),
        sector=_opt("seccion"),
        locality=_opt("colonia"),
        postal_code=_opt("codigo_postal"),
    )


__all__ = ["build_hierarchy"]
