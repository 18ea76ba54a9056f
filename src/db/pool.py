"""Process-wide asyncpg pool, one per running event loop."""

from __future__ import annotations

import asyncio
from typing import Any, cast
from weakref import WeakKeyDictionary

import asyncpg
import structlog
from dotenv import load_dotenv

from src.config.db_settings import PoolConfig

LOGGER = structlog.get_logger(__name__)

HIERARCHY_TABLES: tuple[str, ...] = ("lideres", "brigadistas", "movilizadores", "ciudadanos")


class _PoolRegistry:
    """Pools and their creation locks keyed by event loop.

    ``latest`` remembers the most recently initialised pool so that
    synchronous callers outside a loop can still reach it.
    """

    def __init__(self) -> None:
        self.pools: WeakKeyDictionary[asyncio.AbstractEventLoop, asyncpg.Pool] = (
            WeakKeyDictionary()
        )
        self.locks: WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock] = (
            WeakKeyDictionary()
        )
        self.latest: asyncpg.Pool | None = None

    def lock_for(self, loop: asyncio.AbstractEventLoop) -> asyncio.Lock:
        return self.locks.setdefault(loop, asyncio.Lock())

    def clear(self) -> None:
        self.pools.clear()
        self.locks.clear()
        self.latest = None


_REGISTRY = _PoolRegistry()


async def init_pool(config: PoolConfig | None = None, *, schema: str = "public") -> asyncpg.Pool:
    """Create the pool for the running loop, or return the one already there.

    Without ``config`` the settings come from the environment (``.env``
    included). The hierarchy tables are looked up in ``schema`` once the pool
    exists; missing tables are logged, not raised.
    """
    loop = asyncio.get_running_loop()
    async with _REGISTRY.lock_for(loop):
        pool = _REGISTRY.pools.get(loop)
        if pool is None:
            if config is None:
                load_dotenv(override=False)
                config = PoolConfig.model_validate({})
            pool = await cast(Any, asyncpg).create_pool(
                dsn=config.dsn,
                min_size=config.min_size,
                max_size=config.max_size,
                timeout=config.timeout,
                server_settings=config.server_settings(),
            )
            _REGISTRY.pools[loop] = pool
            await _warn_missing_tables(pool, schema)
            LOGGER.info(
                "db.pool.initialised",
                min_size=config.min_size,
                max_size=config.max_size,
                schema=schema,
            )
        _REGISTRY.latest = pool
        return pool


async def _warn_missing_tables(pool: asyncpg.Pool, schema: str) -> None:
    try:
        async with pool.acquire() as conn:
            missing = [
                table
                for table in HIERARCHY_TABLES
                if not await cast(Any, conn).fetchval(
                    "SELECT to_regclass($1) IS NOT NULL", f"{schema}.{table}"
                )
            ]
    except Exception as exc:  # pragma: no cover - the check is advisory
        LOGGER.warning("db.pool.schema_check_failed", schema=schema, error=str(exc))
        return
    if missing:
        LOGGER.warning("db.pool.tables_missing", schema=schema, tables=missing)


def get_pool() -> asyncpg.Pool:
    """Pool of the running loop, else the latest one initialised."""
    try:
        pool = _REGISTRY.pools.get(asyncio.get_running_loop())
    except RuntimeError:
        pool = None
    if pool is None:
        pool = _REGISTRY.latest
    if pool is None:
        raise RuntimeError("Database pool not initialised. Call init_pool() first.")
    return pool


async def close_pool() -> None:
    loop = asyncio.get_running_loop()
    async with _REGISTRY.lock_for(loop):
        pool = _REGISTRY.pools.pop(loop, None)
    if pool is None:
        return
    await pool.close()
    if _REGISTRY.latest is pool:
        _REGISTRY.latest = None
    LOGGER.info("db.pool.closed")


__all__ = ["HIERARCHY_TABLES", "close_pool", "get_pool", "init_pool"]
