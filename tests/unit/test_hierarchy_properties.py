"""Property-based tests for tree building, stats and rankings using Hypothesis.

Tree shapes are generated as nested lists of citizen counts: one list per
lider, one list per brigadista, one integer per movilizador.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from hypothesis import given
from hypothesis import strategies as st

from src.analytics.services.aggregation import (
    assign_rankings,
    calculate_performance_score,
    classify_performance,
    compute_hierarchy_stats,
)
from src.analytics.services.tree_builder import build_hierarchy
from src.analytics.services.tree_query import flatten_hierarchy, search_hierarchy

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)

shapes = st.lists(
    st.lists(st.lists(st.integers(min_value=0, max_value=12), max_size=4), max_size=3),
    max_size=3,
)


def _rows(shape: list[list[list[int]]]) -> list[dict[str, Any]]:
    created = NOW - timedelta(days=5)

    def record(node_id: str) -> dict[str, Any]:
        return {"id": node_id, "nombre": f"Trabajador {node_id}", "created_at": created}

    rows = []
    for li, brigades in enumerate(shape):
        lider = record(f"l{li}")
        lider["brigadistas"] = []
        for bi, mobilizers in enumerate(brigades):
            brigadista = record(f"l{li}b{bi}")
            brigadista["movilizadores"] = []
            for mi, citizens in enumerate(mobilizers):
                movilizador = record(f"l{li}b{bi}m{mi}")
                movilizador["ciudadanos"] = [
                    {"id": f"{movilizador['id']}c{ci}", "created_at": created}
                    for ci in range(citizens)
                ]
                brigadista["movilizadores"].append(movilizador)
            lider["brigadistas"].append(brigadista)
        rows.append(lider)
    return rows


@given(shape=shapes)
@pytest.mark.unit
def test_registered_counts_equal_leaf_sums(shape: list[list[list[int]]]) -> None:
    """Property: every worker's count is the number of citizens beneath it."""
    tree = build_hierarchy(_rows(shape), now=NOW)

    for lider, brigades in zip(tree, shape):
        assert lider.registered_count == sum(sum(m) for m in brigades)
        for brigadista, mobilizers in zip(lider.children, brigades):
            assert brigadista.registered_count == sum(mobilizers)
            assert [m.registered_count for m in brigadista.children] == mobilizers

    stats = compute_hierarchy_stats(tree)
    assert stats.total_ciudadanos == sum(sum(sum(m) for m in b) for b in shape)
    assert stats.total_ciudadanos == sum(node.registered_count for node in tree)


@given(shape=shapes)
@pytest.mark.unit
def test_flatten_is_repeatable_and_pre_ordered(shape: list[list[list[int]]]) -> None:
    tree = build_hierarchy(_rows(shape), now=NOW)

    flat = flatten_hierarchy(tree)

    assert flat == flatten_hierarchy(tree)
    assert search_hierarchy("", tree) == flat
    for node in flat:
        assert node.level == node.role.depth
    # a child always follows its parent
    position = {node.id: index for index, node in enumerate(flat)}
    for node in flat:
        if node.parent_id is not None:
            assert position[node.parent_id] < position[node.id]


@given(shape=shapes)
@pytest.mark.unit
def test_rankings_are_dense_and_score_ordered(shape: list[list[list[int]]]) -> None:
    flat = flatten_hierarchy(build_hierarchy(_rows(shape), now=NOW))

    ranked = assign_rankings(flat)

    assert [node.performance.ranking for node in ranked] == list(range(1, len(flat) + 1))
    scores = [calculate_performance_score(node) for node in ranked]
    assert scores == sorted(scores, reverse=True)
    # inputs keep ranking 0
    assert all(node.performance.ranking == 0 for node in flat)


@given(score=st.floats(min_value=0, max_value=100, allow_nan=False))
@pytest.mark.unit
def test_band_boundaries_are_monotonic(score: float) -> None:
    order = ["poor", "average", "good", "excellent"]
    band = classify_performance(score).value

    assert order.index(band) <= order.index(classify_performance(min(100.0, score + 1)).value)
