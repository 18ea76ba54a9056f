"""Hierarchy service: cached tree construction and the derived views built on it."""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator

import structlog

from src.analytics.errors import (
    AnalyticsError,
    AnalyticsErrorCode,
    BuildError,
    GatewayError,
    ServiceError,
)
from src.analytics.models import (
    FilterOptions,
    HierarchyNode,
    HierarchyStats,
    PerformanceBand,
)
from src.analytics.services.aggregation import assign_rankings, compute_hierarchy_stats
from src.analytics.services.cache import TTLCache, make_cache_key
from src.analytics.services.tree_builder import build_hierarchy
from src.analytics.services.tree_query import (
    apply_filters,
    filter_by_performance_band,
    flatten_hierarchy,
    search_hierarchy,
)
from src.config.settings import AnalyticsSettings, get_settings
from src.db.gateway.hierarchy import HierarchyGateway
from src.infra.types.db import PoolProtocol

LOGGER = structlog.get_logger(__name__)

Tree = tuple[HierarchyNode, ...]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HierarchyService:
    """Serve the worker hierarchy and its statistics to the presentation layer.

    Trees are rebuilt on a cache miss and then shared read-only: nodes are
    frozen and rankings are returned on copies. Concurrent requests for the
    same cache key share a single gateway fetch.

    Every public coroutine raises only ``ServiceError``.
    """

    def __init__(
        self,
        pool: PoolProtocol,
        *,
        gateway: HierarchyGateway | None = None,
        cache: TTLCache[object] | None = None,
        settings: AnalyticsSettings | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        cfg = settings if settings is not None else get_settings()
        self._pool = pool
        self._gateway = gateway if gateway is not None else HierarchyGateway(schema=cfg.db_schema)
        self._cache: TTLCache[object] = cache if cache is not None else TTLCache(
            ttl_seconds=cfg.hierarchy_cache_ttl_seconds,
            max_entries=cfg.cache_max_entries,
            name="hierarchy",
        )
        self._now = now
        self._inflight: dict[str, asyncio.Task[Tree]] = {}

    @property
    def cache(self) -> TTLCache[object]:
        return self._cache

    async def get_hierarchical_data(
        self, filters: FilterOptions | None = None
    ) -> list[HierarchyNode]:
        with self._service_errors("get_hierarchical_data", "Failed to fetch hierarchical data"):
            return list(await self._get_tree(filters))

    async def get_flattened_hierarchy(
        self, filters: FilterOptions | None = None
    ) -> list[HierarchyNode]:
        with self._service_errors("get_flattened_hierarchy", "Failed to flatten hierarchy"):
            tree = await self._get_tree(filters)
            return apply_filters(flatten_hierarchy(tree), filters)

    async def get_hierarchy_stats(self, filters: FilterOptions | None = None) -> HierarchyStats:
        with self._service_errors(
            "get_hierarchy_stats", "Failed to calculate hierarchy statistics"
        ):
            key = make_cache_key("hierarchy-stats", filters)
            cached = self._cache.get(key)
            if isinstance(cached, HierarchyStats):
                return cached
            stats = compute_hierarchy_stats(await self._get_tree(filters))
            self._cache.set(key, stats)
            return stats

    async def search_workers(
        self, search_term: str, filters: FilterOptions | None = None
    ) -> list[HierarchyNode]:
        with self._service_errors("search_workers", "Failed to search workers"):
            tree = await self._get_tree(filters)
            return apply_filters(search_hierarchy(search_term, tree), filters)

    async def get_workers_by_performance(
        self, band: PerformanceBand | str, filters: FilterOptions | None = None
    ) -> list[HierarchyNode]:
        with self._service_errors(
            "get_workers_by_performance", "Failed to get workers by performance"
        ):
            wanted = self._parse_band(band)
            tree = await self._get_tree(filters)
            return apply_filters(filter_by_performance_band(wanted, tree), filters)

    async def get_ranked_workers(self, filters: FilterOptions | None = None) -> list[HierarchyNode]:
        """Flattened (and filtered) nodes ordered by composite score, ranked 1..N."""
        with self._service_errors("get_ranked_workers", "Failed to rank workers"):
            tree = await self._get_tree(filters)
            return assign_rankings(apply_filters(flatten_hierarchy(tree), filters))

    def clear_cache(self) -> None:
        self._cache.clear()
        LOGGER.info("hierarchy.cache.cleared")

    # --- internals ---

    async def _get_tree(self, filters: FilterOptions | None) -> Tree:
        key = make_cache_key("hierarchical-data", filters)
        cached = self._cache.get(key)
        if isinstance(cached, tuple):
            LOGGER.debug("hierarchy.cache.hit", key=key)
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_build(key, filters))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget_inflight(key, done))
        else:
            LOGGER.debug("hierarchy.fetch.joined", key=key)
        # a cancelled caller leaves the shared fetch running
        return await asyncio.shield(task)

    def _forget_inflight(self, key: str, task: "asyncio.Task[Tree]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # mark the exception retrieved; awaiting callers still receive it
            task.exception()

    async def _fetch_and_build(self, key: str, filters: FilterOptions | None) -> Tree:
        regions = filters.gateway_regions() if filters is not None else None
        try:
            async with self._pool.acquire() as connection:
                result = await self._gateway.fetch_hierarchy(connection, regions=regions)
        except AnalyticsError:
            raise
        except Exception as exc:
            raise GatewayError(
                "Could not reach the hierarchy data source",
                cause=exc,
                context={"regions": list(regions or [])},
            ) from exc

        if result.is_err():
            cause = result.unwrap_err()
            raise GatewayError(
                "Failed to fetch hierarchical data",
                cause=cause,
                context={"regions": list(regions or [])},
            ) from cause

        tree = tuple(build_hierarchy(result.unwrap(), now=self._now()))
        self._cache.set(key, tree)
        LOGGER.info("hierarchy.tree.built", key=key, roots=len(tree))
        return tree

    @staticmethod
    def _parse_band(band: PerformanceBand | str) -> PerformanceBand:
        try:
            return PerformanceBand(band)
        except ValueError as exc:
            raise ServiceError(
                f"Unknown performance band: {band!r}",
                operation="get_workers_by_performance",
                error_code=AnalyticsErrorCode.ANALYTICS_INVALID_ARGUMENT,
                cause=exc,
            ) from exc

    @contextmanager
    def _service_errors(self, operation: str, message: str) -> Iterator[None]:
        try:
            yield
        except ServiceError as exc:
            LOGGER.error(
                "hierarchy.operation.failed",
                operation=exc.operation,
                error_code=exc.error_code.value,
                error=exc.message,
            )
            raise
        except (BuildError, GatewayError) as exc:
            LOGGER.error(
                "hierarchy.operation.failed",
                operation=operation,
                error_type=type(exc).__name__,
                error=exc.message,
                context=exc.log_safe_context(),
            )
            raise ServiceError(message, operation=operation, cause=exc) from exc
        except Exception as exc:
            LOGGER.exception(
                "hierarchy.operation.unexpected_error", operation=operation, error=str(exc)
            )
            raise ServiceError(message, operation=operation, cause=exc) from exc
