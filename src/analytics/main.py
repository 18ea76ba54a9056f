from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from typing import Any

import structlog
from dotenv import load_dotenv

from src.analytics.errors import ServiceError
from src.analytics.models import FilterOptions
from src.analytics.services.hierarchy_service import HierarchyService
from src.analytics.services.worker_analytics_service import WorkerAnalyticsService
from src.config.settings import AnalyticsSettings, get_settings
from src.db.pool import close_pool, init_pool
from src.infra.logging.config import configure_logging
from src.infra.types.db import PoolProtocol

LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AnalyticsServices:
    hierarchy: HierarchyService
    workers: WorkerAnalyticsService


def build_services(
    pool: PoolProtocol, settings: AnalyticsSettings | None = None
) -> AnalyticsServices:
    """Wire both services around one pool; the analytics service reuses the hierarchy one."""
    cfg = settings if settings is not None else get_settings()
    hierarchy = HierarchyService(pool, settings=cfg)
    return AnalyticsServices(
        hierarchy=hierarchy,
        workers=WorkerAnalyticsService(hierarchy, settings=cfg),
    )


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hierarchy_analytics",
        description="Print hierarchy analytics for the lider/brigadista/movilizador network.",
    )
    parser.add_argument(
        "view",
        choices=("tree", "stats", "ranked", "search"),
        help="Which view to print as JSON",
    )
    parser.add_argument(
        "--region",
        action="append",
        default=[],
        help="Restrict to leaders in this entidad (repeatable)",
    )
    parser.add_argument("--term", default="", help="Search term for the 'search' view")
    parser.add_argument("--active-only", action="store_true", help="Only active workers")
    return parser.parse_args(argv)


async def _render(services: AnalyticsServices, args: argparse.Namespace) -> Any:
    filters = FilterOptions(regions=args.region, active_only=args.active_only)
    if args.view == "tree":
        tree = await services.hierarchy.get_hierarchical_data(filters)
        return [node.to_dict() for node in tree]
    if args.view == "stats":
        stats = await services.hierarchy.get_hierarchy_stats(filters)
        return stats.to_dict()
    if args.view == "ranked":
        ranked = await services.hierarchy.get_ranked_workers(filters)
        return [node.to_dict(include_children=False) for node in ranked]
    found = await services.hierarchy.search_workers(args.term, filters)
    return [node.to_dict(include_children=False) for node in found]


async def _amain(argv: list[str]) -> int:
    load_dotenv(override=False)
    settings = get_settings()
    configure_logging(settings.log_level)
    args = _parse_args(argv)

    pool = await init_pool(schema=settings.db_schema)
    try:
        services = build_services(pool, settings)
        try:
            payload = await _render(services, args)
        except ServiceError as exc:
            LOGGER.error(
                "analytics.cli.failed",
                error=exc.message,
                error_code=exc.error_code.value,
                context=exc.log_safe_context(),
            )
            return 1
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0
    finally:
        await close_pool()


def main() -> None:  # pragma: no cover - script entry
    raise SystemExit(asyncio.run(_amain(sys.argv[1:])))


if __name__ == "__main__":  # pragma: no cover
    main()
