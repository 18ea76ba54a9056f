"""Value objects returned by the worker analytics service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from src.analytics.models import (
    HierarchyStats,
    LocationInfo,
    PerformanceBand,
    Trend,
    WorkerRole,
)

__all__ = [
    "BrigadierProductivityMetric",
    "ComparativeMetric",
    "GeographicAnalysis",
    "GoalsMetrics",
    "HeatmapPoint",
    "HierarchyGoal",
    "LeaderProductivityMetric",
    "LevelQuality",
    "MobilizerProductivityMetric",
    "OverallProgress",
    "PerformerSummary",
    "ProductivityAnalytics",
    "QualityMetrics",
    "RegionDistribution",
    "TerritorialCoverage",
    "UnifiedAnalytics",
    "WorkerAnalytics",
    "WorkerGoal",
    "WorkerQualityScore",
]


@dataclass(frozen=True, slots=True)
class WorkerAnalytics:
    worker_id: str
    worker_name: str
    role: WorkerRole
    registered_count: int
    verification_rate: float
    data_completeness: float
    location: LocationInfo
    score: float
    band: PerformanceBand
    ranking: int
    trend: Trend
    last_activity: datetime


@dataclass(frozen=True, slots=True)
class LeaderProductivityMetric:
    leader_id: str
    name: str
    total_network: int
    brigadier_count: int
    mobilizer_count: int
    citizen_count: int
    registration_velocity: float
    network_efficiency: float
    days_to_target: int | None
    performance_rank: int
    trend: Trend
    last_activity: datetime
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class BrigadierProductivityMetric:
    brigadier_id: str
    name: str
    leader_id: str
    leader_name: str
    mobilizer_count: int
    citizen_count: int
    avg_citizens_per_mobilizer: float
    registration_rate: float
    efficiency_score: float
    performance_level: str  # high, medium, low
    needs_support: bool
    last_activity: datetime
    target_progress: float


@dataclass(frozen=True, slots=True)
class MobilizerProductivityMetric:
    mobilizer_id: str
    name: str
    brigadier_id: str
    brigadier_name: str
    leader_id: str
    leader_name: str
    citizen_count: int
    registration_rate: float
    activity_level: str  # active, moderate, inactive
    last_registration: datetime
    target_progress: float
    weekly_average: float
    monthly_goal: int


@dataclass(frozen=True, slots=True)
class PerformerSummary:
    id: str
    name: str
    score: float


@dataclass(frozen=True, slots=True)
class ComparativeMetric:
    level: WorkerRole
    worker_count: int
    average_citizens: float
    top_performer: PerformerSummary | None
    bottom_performer: PerformerSummary | None
    performance_distribution: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProductivityAnalytics:
    leader_metrics: Sequence[LeaderProductivityMetric]
    brigadier_metrics: Sequence[BrigadierProductivityMetric]
    mobilizer_metrics: Sequence[MobilizerProductivityMetric]
    comparative_analysis: Sequence[ComparativeMetric]


@dataclass(frozen=True, slots=True)
class WorkerGoal:
    worker_id: str
    worker_name: str
    role: WorkerRole
    current_progress: int
    target: int
    percentage: float
    status: str  # completed, ahead, on-track, behind
    days_remaining: int | None
    required_daily_rate: float


@dataclass(frozen=True, slots=True)
class HierarchyGoal:
    level: WorkerRole
    total_workers: int
    workers_on_track: int
    workers_behind: int
    workers_ahead: int
    average_progress: float
    level_target: int
    level_current: int


@dataclass(frozen=True, slots=True)
class OverallProgress:
    current: int
    target: int
    percentage: float
    trend: str  # on-track, behind
    estimated_completion: datetime | None = None


@dataclass(frozen=True, slots=True)
class GoalsMetrics:
    overall_progress: OverallProgress
    worker_goals: Sequence[WorkerGoal]
    hierarchy_goals: Sequence[HierarchyGoal]


@dataclass(frozen=True, slots=True)
class WorkerQualityScore:
    worker_id: str
    worker_name: str
    role: WorkerRole
    overall_score: float
    verification_rate: float
    data_completeness: float
    trend: str  # improving, stable, declining


@dataclass(frozen=True, slots=True)
class LevelQuality:
    level: WorkerRole
    worker_count: int
    average_score: float
    average_verification_rate: float
    average_data_completeness: float


@dataclass(frozen=True, slots=True)
class QualityMetrics:
    verification_rate: float
    data_completeness: float
    worker_quality_scores: Sequence[WorkerQualityScore]
    quality_by_level: Sequence[LevelQuality]


@dataclass(frozen=True, slots=True)
class RegionDistribution:
    region: str
    count: int
    percentage: float
    lideres: int
    brigadistas: int
    movilizadores: int


@dataclass(frozen=True, slots=True)
class HeatmapPoint:
    region: str
    intensity: float
    registration_count: int


@dataclass(frozen=True, slots=True)
class TerritorialCoverage:
    region: str
    coverage: float
    target: int
    status: str  # excellent, good, needs_improvement, critical


@dataclass(frozen=True, slots=True)
class GeographicAnalysis:
    region_distribution: Sequence[RegionDistribution]
    heatmap: Sequence[HeatmapPoint]
    territorial_coverage: Sequence[TerritorialCoverage]


@dataclass(frozen=True, slots=True)
class UnifiedAnalytics:
    """Dashboard landing payload.

    ``hierarchy_stats`` and the totals derived from it are ``None`` when the
    statistics fetch failed; the worker lists are still served.
    """

    hierarchy_stats: HierarchyStats | None
    total_ciudadanos: int | None
    total_trabajadores: int | None
    goal_progress: float | None
    worker_analytics: Sequence[WorkerAnalytics]
    top_performers: Sequence[WorkerAnalytics]
    under_performers: Sequence[WorkerAnalytics]
    last_updated: datetime
    quality_metrics: QualityMetrics | None = None
    geographic_data: GeographicAnalysis | None = None
