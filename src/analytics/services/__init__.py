"""Service layer for hierarchy analytics.

Submodules are imported as attributes so they are visible on the package.
"""

from . import hierarchy_service as hierarchy_service  # noqa: F401
from . import worker_analytics_service as worker_analytics_service  # noqa: F401

__all__ = ["hierarchy_service", "worker_analytics_service"]
