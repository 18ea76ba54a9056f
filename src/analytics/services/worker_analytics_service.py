"""Worker analytics built on top of the hierarchy service.

Rankings, productivity metrics per tier and goal tracking all derive from the
same cached tree; this service keeps its own, longer-lived cache for the
derived views.
"""

from __future__ import annotations

import asyncio
import math
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator, Sequence

import structlog

from src.analytics.errors import AnalyticsErrorCode, ServiceError
from src.analytics.models import FilterOptions, HierarchyNode, HierarchyStats, Trend, WorkerRole
from src.analytics.services.aggregation import calculate_performance_score, classify_performance
from src.analytics.services.cache import TTLCache, make_cache_key
from src.analytics.services.hierarchy_service import HierarchyService
from src.analytics.services.metrics import elapsed_days
from src.analytics.services.tree_query import flatten_hierarchy
from src.analytics.worker_models import (
    BrigadierProductivityMetric,
    ComparativeMetric,
    GeographicAnalysis,
    GoalsMetrics,
    HeatmapPoint,
    HierarchyGoal,
    LeaderProductivityMetric,
    LevelQuality,
    MobilizerProductivityMetric,
    OverallProgress,
    PerformerSummary,
    ProductivityAnalytics,
    QualityMetrics,
    RegionDistribution,
    TerritorialCoverage,
    UnifiedAnalytics,
    WorkerAnalytics,
    WorkerGoal,
    WorkerQualityScore,
)
from src.config.settings import AnalyticsSettings, get_settings

LOGGER = structlog.get_logger(__name__)

DEFAULT_PERFORMER_COUNT = 10

ROLE_TARGETS: dict[WorkerRole, int] = {
    WorkerRole.LIDER: 1000,
    WorkerRole.BRIGADISTA: 500,
    WorkerRole.MOVILIZADOR: 100,
}
MOBILIZER_MONTHLY_GOAL = 100
REGION_TARGET = 1000
UNKNOWN_REGION = "Unknown"

_QUALITY_TRENDS: dict[Trend, str] = {
    Trend.UP: "improving",
    Trend.STABLE: "stable",
    Trend.DOWN: "declining",
}

RECOMMEND_VERIFICATION_BELOW = 50.0
RECOMMEND_COMPLETENESS_BELOW = 70.0
RECOMMEND_REGISTRATIONS_BELOW = 10

NEEDS_SUPPORT_BELOW = 50.0
ACTIVE_WITHIN_DAYS = 7
MODERATE_WITHIN_DAYS = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- pure helpers ---


def efficiency_score(node: HierarchyNode) -> float:
    return (node.performance.verification_rate + node.performance.data_completeness) / 2


def performance_level(score: float) -> str:
    if score >= 80:
        return "high"
    if score >= 60:
        return "medium"
    return "low"


def activity_level(last_activity: datetime, *, now: datetime) -> str:
    days = elapsed_days(last_activity, now)
    if days <= ACTIVE_WITHIN_DAYS:
        return "active"
    if days <= MODERATE_WITHIN_DAYS:
        return "moderate"
    return "inactive"


def registration_velocity(count: int, since: datetime, *, now: datetime) -> float:
    """Citizens per day since ``since``; at least one day is assumed."""
    return count / max(1, elapsed_days(since, now))


def weekly_average(count: int, since: datetime, *, now: datetime) -> float:
    return count / max(1, elapsed_days(since, now) // 7)


def target_progress(current: int, target: int) -> float:
    return min(current * 100.0 / target, 100.0)


def days_to_target(current: int, target: int, velocity: float) -> int | None:
    """Days left at the current velocity; ``None`` when there is no velocity."""
    if current >= target:
        return 0
    if velocity <= 0:
        return None
    return math.ceil((target - current) / velocity)


def goal_status(percentage: float) -> str:
    if percentage >= 100:
        return "completed"
    if percentage >= 80:
        return "ahead"
    if percentage >= 60:
        return "on-track"
    return "behind"


def recommendations_for(node: HierarchyNode) -> tuple[str, ...]:
    advice: list[str] = []
    if node.performance.verification_rate < RECOMMEND_VERIFICATION_BELOW:
        advice.append("Mejorar proceso de verificación de contactos")
    if node.performance.data_completeness < RECOMMEND_COMPLETENESS_BELOW:
        advice.append("Completar información faltante en registros")
    if node.registered_count < RECOMMEND_REGISTRATIONS_BELOW:
        advice.append("Incrementar actividades de registro de ciudadanos")
    return tuple(advice)


def network_size(node: HierarchyNode) -> int:
    """The node itself plus every materialized descendant."""
    return 1 + sum(network_size(child) for child in node.children)


def to_worker_analytics(node: HierarchyNode) -> WorkerAnalytics:
    score = calculate_performance_score(node)
    return WorkerAnalytics(
        worker_id=node.id,
        worker_name=node.name,
        role=node.role,
        registered_count=node.registered_count,
        verification_rate=node.performance.verification_rate,
        data_completeness=node.performance.data_completeness,
        location=node.location,
        score=score,
        band=classify_performance(score),
        ranking=node.performance.ranking,
        trend=node.performance.trend,
        last_activity=node.last_activity,
    )


def comparative_metric(level: WorkerRole, nodes: Sequence[HierarchyNode]) -> ComparativeMetric:
    """Per-tier summary ranked on registered citizens; first seen wins ties."""
    if not nodes:
        return ComparativeMetric(
            level=level,
            worker_count=0,
            average_citizens=0.0,
            top_performer=None,
            bottom_performer=None,
            performance_distribution={"high": 0.0, "medium": 0.0, "low": 0.0},
        )

    top = nodes[0]
    bottom = nodes[0]
    counts = {"high": 0, "medium": 0, "low": 0}
    for node in nodes:
        if node.registered_count > top.registered_count:
            top = node
        if node.registered_count < bottom.registered_count:
            bottom = node
        counts[performance_level(efficiency_score(node))] += 1

    total = len(nodes)
    return ComparativeMetric(
        level=level,
        worker_count=total,
        average_citizens=sum(node.registered_count for node in nodes) / total,
        top_performer=PerformerSummary(top.id, top.name, float(top.registered_count)),
        bottom_performer=PerformerSummary(bottom.id, bottom.name, float(bottom.registered_count)),
        performance_distribution={band: count * 100.0 / total for band, count in counts.items()},
    )


def hierarchy_goal(level: WorkerRole, goals: Iterable[WorkerGoal]) -> HierarchyGoal:
    level_goals = [goal for goal in goals if goal.role is level]
    total = len(level_goals)
    return HierarchyGoal(
        level=level,
        total_workers=total,
        workers_on_track=sum(1 for g in level_goals if g.status in ("on-track", "ahead")),
        workers_behind=sum(1 for g in level_goals if g.status == "behind"),
        workers_ahead=sum(1 for g in level_goals if g.status == "ahead"),
        average_progress=(sum(g.percentage for g in level_goals) / total) if total else 0.0,
        level_target=sum(g.target for g in level_goals),
        level_current=sum(g.current_progress for g in level_goals),
    )


def estimated_completion(
    current: int, target: int, since: datetime | None, *, now: datetime
) -> datetime | None:
    """Projected date for ``target`` at the velocity observed since ``since``."""
    if current >= target:
        return now
    if since is None:
        return None
    days = days_to_target(current, target, registration_velocity(current, since, now=now))
    return None if days is None else now + timedelta(days=days)


def quality_trend(trend: Trend) -> str:
    return _QUALITY_TRENDS[trend]


def quality_score(worker: WorkerAnalytics) -> WorkerQualityScore:
    return WorkerQualityScore(
        worker_id=worker.worker_id,
        worker_name=worker.worker_name,
        role=worker.role,
        overall_score=(worker.verification_rate + worker.data_completeness) / 2,
        verification_rate=worker.verification_rate,
        data_completeness=worker.data_completeness,
        trend=quality_trend(worker.trend),
    )


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def level_quality(level: WorkerRole, scores: Iterable[WorkerQualityScore]) -> LevelQuality:
    level_scores = [score for score in scores if score.role is level]
    return LevelQuality(
        level=level,
        worker_count=len(level_scores),
        average_score=_mean([s.overall_score for s in level_scores]),
        average_verification_rate=_mean([s.verification_rate for s in level_scores]),
        average_data_completeness=_mean([s.data_completeness for s in level_scores]),
    )


def coverage_status(current: int, target: int) -> str:
    percentage = current * 100.0 / target
    if percentage >= 90:
        return "excellent"
    if percentage >= 70:
        return "good"
    if percentage >= 50:
        return "needs_improvement"
    return "critical"


def geographic_analysis(tree: Sequence[HierarchyNode]) -> GeographicAnalysis:
    """Group workers by ``entidad``.

    A region's count is the citizens registered by movilizadores located
    there. Regions are listed by count, largest first; ties keep first-seen
    order. Workers without a region fall under ``UNKNOWN_REGION``.
    """
    citizens: dict[str, int] = {}
    workers: dict[str, dict[WorkerRole, int]] = {}
    for node in flatten_hierarchy(tree):
        region = node.location.region or UNKNOWN_REGION
        per_role = workers.setdefault(region, {role: 0 for role in WorkerRole})
        per_role[node.role] += 1
        citizens.setdefault(region, 0)
        if node.role is WorkerRole.MOVILIZADOR:
            citizens[region] += node.registered_count

    total = sum(citizens.values())
    regions = sorted(citizens, key=lambda name: citizens[name], reverse=True)
    return GeographicAnalysis(
        region_distribution=tuple(
            RegionDistribution(
                region=region,
                count=citizens[region],
                percentage=(citizens[region] * 100.0 / total) if total else 0.0,
                lideres=workers[region][WorkerRole.LIDER],
                brigadistas=workers[region][WorkerRole.BRIGADISTA],
                movilizadores=workers[region][WorkerRole.MOVILIZADOR],
            )
            for region in regions
        ),
        heatmap=tuple(
            HeatmapPoint(
                region=region,
                intensity=min(citizens[region] / 100, 100.0),
                registration_count=citizens[region],
            )
            for region in regions
        ),
        territorial_coverage=tuple(
            TerritorialCoverage(
                region=region,
                coverage=min(citizens[region] * 100.0 / REGION_TARGET, 100.0),
                target=REGION_TARGET,
                status=coverage_status(citizens[region], REGION_TARGET),
            )
            for region in regions
        ),
    )


class WorkerAnalyticsService:
    """Dashboard analytics over the worker hierarchy.

    Public coroutines raise only ``ServiceError``. ``get_unified_analytics``
    is the one exception to fail-fast: statistics are best-effort there.
    """

    def __init__(
        self,
        hierarchy: HierarchyService,
        *,
        cache: TTLCache[object] | None = None,
        settings: AnalyticsSettings | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings if settings is not None else get_settings()
        self._hierarchy = hierarchy
        self._cache: TTLCache[object] = cache if cache is not None else TTLCache(
            ttl_seconds=self._settings.analytics_cache_ttl_seconds,
            max_entries=self._settings.cache_max_entries,
            name="worker-analytics",
        )
        self._now = now

    @property
    def cache(self) -> TTLCache[object]:
        return self._cache

    async def get_worker_analytics(
        self, filters: FilterOptions | None = None
    ) -> list[WorkerAnalytics]:
        """Every worker in the (filtered) flattened view, best score first."""
        with self._service_errors("get_worker_analytics", "Failed to get worker analytics"):
            key = make_cache_key("worker-analytics", filters)
            cached = self._cache.get(key)
            if isinstance(cached, tuple):
                return list(cached)
            ranked = await self._hierarchy.get_ranked_workers(filters)
            analytics = tuple(to_worker_analytics(node) for node in ranked)
            self._cache.set(key, analytics)
            return list(analytics)

    async def get_top_performers(
        self, filters: FilterOptions | None = None, count: int = DEFAULT_PERFORMER_COUNT
    ) -> list[WorkerAnalytics]:
        with self._service_errors("get_top_performers", "Failed to get top performers"):
            self._check_count(count, "get_top_performers")
            analytics = await self.get_worker_analytics(filters)
            return analytics[:count]

    async def get_under_performers(
        self, filters: FilterOptions | None = None, count: int = DEFAULT_PERFORMER_COUNT
    ) -> list[WorkerAnalytics]:
        with self._service_errors("get_under_performers", "Failed to get under performers"):
            self._check_count(count, "get_under_performers")
            analytics = await self.get_worker_analytics(filters)
            return sorted(analytics, key=lambda item: item.score)[:count]

    async def get_productivity_analytics(
        self, filters: FilterOptions | None = None
    ) -> ProductivityAnalytics:
        with self._service_errors(
            "get_productivity_analytics", "Failed to get worker productivity analytics"
        ):
            key = make_cache_key("productivity-analytics", filters)
            cached = self._cache.get(key)
            if isinstance(cached, ProductivityAnalytics):
                return cached
            tree = await self._hierarchy.get_hierarchical_data(filters)
            analytics = self._productivity(tree, now=self._now())
            self._cache.set(key, analytics)
            return analytics

    async def get_goals_metrics(self, filters: FilterOptions | None = None) -> GoalsMetrics:
        with self._service_errors("get_goals_metrics", "Failed to get goals metrics"):
            key = make_cache_key("goals-metrics", filters)
            cached = self._cache.get(key)
            if isinstance(cached, GoalsMetrics):
                return cached
            stats = await self._hierarchy.get_hierarchy_stats(filters)
            analytics = await self.get_worker_analytics(filters)
            goals = self._goals(stats, analytics, now=self._now())
            self._cache.set(key, goals)
            return goals

    async def get_quality_metrics(self, filters: FilterOptions | None = None) -> QualityMetrics:
        """Per-worker quality (mean of verification and completeness) and roll-ups per tier."""
        with self._service_errors("get_quality_metrics", "Failed to get quality metrics"):
            key = make_cache_key("quality-metrics", filters)
            cached = self._cache.get(key)
            if isinstance(cached, QualityMetrics):
                return cached
            analytics = await self.get_worker_analytics(filters)
            quality = self._quality(analytics)
            self._cache.set(key, quality)
            return quality

    async def get_geographic_analysis(
        self, filters: FilterOptions | None = None
    ) -> GeographicAnalysis:
        with self._service_errors(
            "get_geographic_analysis", "Failed to get geographic analysis data"
        ):
            key = make_cache_key("geographic-analysis", filters)
            cached = self._cache.get(key)
            if isinstance(cached, GeographicAnalysis):
                return cached
            tree = await self._hierarchy.get_hierarchical_data(filters)
            geography = geographic_analysis(tree)
            self._cache.set(key, geography)
            return geography

    async def get_unified_analytics(
        self, filters: FilterOptions | None = None
    ) -> UnifiedAnalytics:
        with self._service_errors("get_unified_analytics", "Failed to get unified analytics"):
            key = make_cache_key("unified-analytics", filters)
            cached = self._cache.get(key)
            if isinstance(cached, UnifiedAnalytics):
                return cached

            stats_outcome, analytics_outcome, geography_outcome = await asyncio.gather(
                self._hierarchy.get_hierarchy_stats(filters),
                self.get_worker_analytics(filters),
                self.get_geographic_analysis(filters),
                return_exceptions=True,
            )
            if isinstance(analytics_outcome, BaseException):
                raise analytics_outcome
            if isinstance(geography_outcome, BaseException):
                raise geography_outcome

            stats: HierarchyStats | None
            if isinstance(stats_outcome, ServiceError):
                LOGGER.warning(
                    "analytics.unified.stats_unavailable",
                    error=stats_outcome.message,
                    operation=stats_outcome.operation,
                )
                stats = None
            elif isinstance(stats_outcome, BaseException):
                raise stats_outcome
            else:
                stats = stats_outcome

            analytics = analytics_outcome
            unified = UnifiedAnalytics(
                hierarchy_stats=stats,
                total_ciudadanos=stats.total_ciudadanos if stats else None,
                total_trabajadores=stats.total_trabajadores if stats else None,
                goal_progress=(
                    stats.total_ciudadanos * 100.0 / self._settings.goal_total_target
                    if stats
                    else None
                ),
                worker_analytics=tuple(analytics),
                top_performers=tuple(analytics[:DEFAULT_PERFORMER_COUNT]),
                under_performers=tuple(
                    sorted(analytics, key=lambda item: item.score)[:DEFAULT_PERFORMER_COUNT]
                ),
                last_updated=self._now(),
                quality_metrics=self._quality(analytics),
                geographic_data=geography_outcome,
            )
            # degraded payloads are served but not cached
            if stats is not None:
                self._cache.set(key, unified)
            return unified

    def clear_cache(self) -> None:
        self._cache.clear()
        LOGGER.info("analytics.cache.cleared")

    # --- internals ---

    def _productivity(
        self, tree: Sequence[HierarchyNode], *, now: datetime
    ) -> ProductivityAnalytics:
        leaders: list[LeaderProductivityMetric] = []
        brigadiers: list[BrigadierProductivityMetric] = []
        mobilizers: list[MobilizerProductivityMetric] = []
        tiers: dict[WorkerRole, list[HierarchyNode]] = {role: [] for role in WorkerRole}

        for lider in tree:
            tiers[WorkerRole.LIDER].append(lider)
            velocity = registration_velocity(
                lider.registered_count, lider.last_activity, now=now
            )
            network = network_size(lider)
            leaders.append(
                LeaderProductivityMetric(
                    leader_id=lider.id,
                    name=lider.name,
                    total_network=network,
                    brigadier_count=len(lider.children),
                    mobilizer_count=sum(len(b.children) for b in lider.children),
                    citizen_count=lider.registered_count,
                    registration_velocity=velocity,
                    network_efficiency=lider.registered_count / network,
                    days_to_target=days_to_target(
                        lider.registered_count, ROLE_TARGETS[WorkerRole.LIDER], velocity
                    ),
                    performance_rank=0,
                    trend=lider.performance.trend,
                    last_activity=lider.last_activity,
                    recommendations=recommendations_for(lider),
                )
            )

            for brigadista in lider.children:
                tiers[WorkerRole.BRIGADISTA].append(brigadista)
                efficiency = efficiency_score(brigadista)
                mobilizer_count = len(brigadista.children)
                brigadiers.append(
                    BrigadierProductivityMetric(
                        brigadier_id=brigadista.id,
                        name=brigadista.name,
                        leader_id=lider.id,
                        leader_name=lider.name,
                        mobilizer_count=mobilizer_count,
                        citizen_count=brigadista.registered_count,
                        avg_citizens_per_mobilizer=(
                            brigadista.registered_count / mobilizer_count
                            if mobilizer_count
                            else 0.0
                        ),
                        registration_rate=registration_velocity(
                            brigadista.registered_count, brigadista.last_activity, now=now
                        ),
                        efficiency_score=efficiency,
                        performance_level=performance_level(efficiency),
                        needs_support=efficiency < NEEDS_SUPPORT_BELOW,
                        last_activity=brigadista.last_activity,
                        target_progress=target_progress(
                            brigadista.registered_count, ROLE_TARGETS[WorkerRole.BRIGADISTA]
                        ),
                    )
                )

                for movilizador in brigadista.children:
                    tiers[WorkerRole.MOVILIZADOR].append(movilizador)
                    mobilizers.append(
                        MobilizerProductivityMetric(
                            mobilizer_id=movilizador.id,
                            name=movilizador.name,
                            brigadier_id=brigadista.id,
                            brigadier_name=brigadista.name,
                            leader_id=lider.id,
                            leader_name=lider.name,
                            citizen_count=movilizador.registered_count,
                            registration_rate=registration_velocity(
                                movilizador.registered_count, movilizador.last_activity, now=now
                            ),
                            activity_level=activity_level(movilizador.last_activity, now=now),
                            last_registration=movilizador.last_activity,
                            target_progress=target_progress(
                                movilizador.registered_count, ROLE_TARGETS[WorkerRole.MOVILIZADOR]
                            ),
                            weekly_average=weekly_average(
                                movilizador.registered_count, movilizador.last_activity, now=now
                            ),
                            monthly_goal=MOBILIZER_MONTHLY_GOAL,
                        )
                    )

        ranked_leaders = sorted(leaders, key=lambda item: item.citizen_count, reverse=True)
        return ProductivityAnalytics(
            leader_metrics=tuple(
                replace(leader, performance_rank=index + 1)
                for index, leader in enumerate(ranked_leaders)
            ),
            brigadier_metrics=tuple(brigadiers),
            mobilizer_metrics=tuple(mobilizers),
            comparative_analysis=tuple(
                comparative_metric(role, nodes) for role, nodes in tiers.items()
            ),
        )

    def _goals(
        self,
        stats: HierarchyStats,
        analytics: Sequence[WorkerAnalytics],
        *,
        now: datetime,
    ) -> GoalsMetrics:
        total_target = self._settings.goal_total_target
        percentage = stats.total_ciudadanos * 100.0 / total_target
        remaining = self._days_remaining(now)

        worker_goals: list[WorkerGoal] = []
        for worker in analytics:
            target = ROLE_TARGETS[worker.role]
            worker_percentage = worker.registered_count * 100.0 / target
            missing = max(0, target - worker.registered_count)
            worker_goals.append(
                WorkerGoal(
                    worker_id=worker.worker_id,
                    worker_name=worker.worker_name,
                    role=worker.role,
                    current_progress=worker.registered_count,
                    target=target,
                    percentage=worker_percentage,
                    status=goal_status(worker_percentage),
                    days_remaining=remaining,
                    required_daily_rate=(missing / remaining) if remaining else 0.0,
                )
            )

        return GoalsMetrics(
            overall_progress=OverallProgress(
                current=stats.total_ciudadanos,
                target=total_target,
                percentage=percentage,
                trend="on-track" if percentage > 50 else "behind",
                estimated_completion=estimated_completion(
                    stats.total_ciudadanos,
                    total_target,
                    min((worker.last_activity for worker in analytics), default=None),
                    now=now,
                ),
            ),
            worker_goals=tuple(worker_goals),
            hierarchy_goals=tuple(hierarchy_goal(role, worker_goals) for role in WorkerRole),
        )

    @staticmethod
    def _quality(analytics: Sequence[WorkerAnalytics]) -> QualityMetrics:
        scores = tuple(quality_score(worker) for worker in analytics)
        return QualityMetrics(
            verification_rate=_mean([s.verification_rate for s in scores]),
            data_completeness=_mean([s.data_completeness for s in scores]),
            worker_quality_scores=scores,
            quality_by_level=tuple(level_quality(role, scores) for role in WorkerRole),
        )

    def _days_remaining(self, now: datetime) -> int | None:
        deadline = self._settings.goal_deadline
        if deadline is None:
            return None
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        return max(0, elapsed_days(now, deadline))

    @staticmethod
    def _check_count(count: int, operation: str) -> None:
        if count < 0:
            raise ServiceError(
                f"count must not be negative, got {count}",
                operation=operation,
                error_code=AnalyticsErrorCode.ANALYTICS_INVALID_ARGUMENT,
            )

    @contextmanager
    def _service_errors(self, operation: str, message: str) -> Iterator[None]:
        try:
            yield
        except ServiceError as exc:
            if exc.operation == operation:
                raise
            LOGGER.error(
                "analytics.operation.failed",
                operation=operation,
                upstream_operation=exc.operation,
                error=exc.message,
            )
            raise ServiceError(message, operation=operation, cause=exc) from exc
        except Exception as exc:
            LOGGER.exception(
                "analytics.operation.unexpected_error", operation=operation, error=str(exc)
            )
            raise ServiceError(message, operation=operation, cause=exc) from exc


__all__ = [
    "ROLE_TARGETS",
    "WorkerAnalyticsService",
    "activity_level",
    "coverage_status",
    "days_to_target",
    "estimated_completion",
    "geographic_analysis",
    "goal_status",
    "network_size",
    "quality_trend",
    "recommendations_for",
]
