"""Read-only queries over a built hierarchy: flatten, search and filter."""

from __future__ import annotations

from typing import Iterable, Sequence

from src.analytics.models import FilterOptions, HierarchyNode, PerformanceBand
from src.analytics.services.aggregation import calculate_performance_score, classify_performance


def flatten_hierarchy(tree: Iterable[HierarchyNode]) -> list[HierarchyNode]:
    """Pre-order listing annotated with zero-based depth.

    The tree is not modified, so repeated calls yield the same order.
    """
    flattened: list[HierarchyNode] = []

    def _walk(nodes: Iterable[HierarchyNode], depth: int) -> None:
        for node in nodes:
            flattened.append(node.with_level(depth))
            if node.children:
                _walk(node.children, depth + 1)

    _walk(tree, 0)
    return flattened


def matches_search(node: HierarchyNode, term: str) -> bool:
    needle = term.casefold()
    if not needle:
        return True
    if needle in node.name.casefold():
        return True
    return any(needle in value.casefold() for value in node.location.populated_values())


def search_hierarchy(term: str, tree: Iterable[HierarchyNode]) -> list[HierarchyNode]:
    """Nodes whose name or any populated location field contains ``term``."""
    needle = term or ""
    return [node for node in flatten_hierarchy(tree) if matches_search(node, needle)]


def filter_by_performance_band(
    band: PerformanceBand | str, tree: Iterable[HierarchyNode]
) -> list[HierarchyNode]:
    wanted = PerformanceBand(band)
    return [
        node
        for node in flatten_hierarchy(tree)
        if classify_performance(calculate_performance_score(node)) is wanted
    ]


def apply_filters(
    nodes: Sequence[HierarchyNode], filters: FilterOptions | None
) -> list[HierarchyNode]:
    """Apply the node-level predicates of ``filters`` to a flattened view.

    ``regions`` is ignored here; it is resolved by the gateway.
    """
    if filters is None or not filters.has_node_predicates:
        return list(nodes)
    return [node for node in nodes if _matches_filters(node, filters)]


def _matches_filters(node: HierarchyNode, filters: FilterOptions) -> bool:
    if filters.roles and node.role not in filters.roles:
        return False
    if filters.active_only and not node.is_active:
        return False
    if filters.date_range is not None and not filters.date_range.contains(node.last_activity):
        return False
    if filters.performance_range is not None and not filters.performance_range.contains(
        calculate_performance_score(node)
    ):
        return False
    if filters.search_term and not matches_search(node, filters.search_term):
        return False
    return True


__all__ = [
    "apply_filters",
    "filter_by_performance_band",
    "flatten_hierarchy",
    "matches_search",
    "search_hierarchy",
]
