"""Worker hierarchy analytics: tree building, statistics and dashboard views."""

from src.analytics.errors import BuildError, GatewayError, ServiceError
from src.analytics.models import FilterOptions, HierarchyNode, HierarchyStats

__all__ = [
    "BuildError",
    "FilterOptions",
    "GatewayError",
    "HierarchyNode",
    "HierarchyStats",
    "ServiceError",
]
