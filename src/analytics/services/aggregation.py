"""Whole-tree statistics, composite scoring and dense rankings."""

from __future__ import annotations

from typing import Iterable, Sequence

from src.analytics.models import (
    HierarchyNode,
    HierarchyStats,
    MostProductiveWorker,
    PerformanceBand,
)

REGISTRATION_POINTS_PER_CITIZEN = 10
MAX_COMPONENT_SCORE = 100.0

# Lower bounds, checked top-down; each band is [bound, next bound).
_BAND_FLOORS: tuple[tuple[PerformanceBand, float], ...] = (
    (PerformanceBand.EXCELLENT, 90.0),
    (PerformanceBand.GOOD, 70.0),
    (PerformanceBand.AVERAGE, 50.0),
)


def calculate_performance_score(node: HierarchyNode) -> float:
    """Average of verification, completeness, activity and capped registrations."""
    activity_score = MAX_COMPONENT_SCORE if node.is_active else 0.0
    registration_score = min(
        float(node.registered_count * REGISTRATION_POINTS_PER_CITIZEN), MAX_COMPONENT_SCORE
    )
    return (
        node.performance.verification_rate
        + node.performance.data_completeness
        + activity_score
        + registration_score
    ) / 4


def classify_performance(score: float) -> PerformanceBand:
    for band, floor in _BAND_FLOORS:
        if score >= floor:
            return band
    return PerformanceBand.POOR


def compute_hierarchy_stats(tree: Iterable[HierarchyNode]) -> HierarchyStats:
    """Single pass over the forest.

    The most productive worker is replaced only by a strictly greater
    ``registered_count`` so the first one seen in pre-order wins ties.
    """
    total_lideres = 0
    total_brigadistas = 0
    total_movilizadores = 0
    total_ciudadanos = 0
    deepest_level = 1
    best = MostProductiveWorker()

    def _consider(node: HierarchyNode) -> None:
        nonlocal best
        if node.registered_count > best.ciudadanos:
            best = MostProductiveWorker(
                id=node.id,
                name=node.name,
                role=node.role.value,
                ciudadanos=node.registered_count,
            )

    for lider in tree:
        total_lideres += 1
        _consider(lider)
        for brigadista in lider.children:
            total_brigadistas += 1
            deepest_level = max(deepest_level, 2)
            _consider(brigadista)
            for movilizador in brigadista.children:
                total_movilizadores += 1
                deepest_level = max(deepest_level, 3)
                total_ciudadanos += movilizador.registered_count
                _consider(movilizador)

    return HierarchyStats(
        total_lideres=total_lideres,
        total_brigadistas=total_brigadistas,
        total_movilizadores=total_movilizadores,
        total_ciudadanos=total_ciudadanos,
        average_ciudadanos_por_lider=_safe_ratio(total_ciudadanos, total_lideres),
        average_ciudadanos_por_brigadista=_safe_ratio(total_ciudadanos, total_brigadistas),
        average_ciudadanos_por_movilizador=_safe_ratio(total_ciudadanos, total_movilizadores),
        deepest_level=deepest_level,
        most_productive_worker=best,
    )


def assign_rankings(nodes: Sequence[HierarchyNode]) -> list[HierarchyNode]:
    """Return the nodes sorted by score (desc) with ``performance.ranking`` set 1..N.

    ``sorted`` is stable, so equal scores keep their input (pre-order)
    order. The input nodes are left untouched.
    """
    ordered = sorted(nodes, key=calculate_performance_score, reverse=True)
    return [node.with_ranking(index + 1) for index, node in enumerate(ordered)]


def _safe_ratio(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator


__all__ = [
    "assign_rankings",
    "calculate_performance_score",
    "classify_performance",
    "compute_hierarchy_stats",
]
