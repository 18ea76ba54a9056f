from __future__ import annotations

import itertools
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from typing import Any

import asyncpg
import pytest
import pytest_asyncio
from dotenv import load_dotenv
from faker import Faker

from src.config.db_settings import PoolConfig
from src.config.settings import AnalyticsSettings
from src.db.pool import close_pool, init_pool

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def faker() -> Faker:
    """Provide a Faker instance with Mexican Spanish and English locales."""
    return Faker(["es_MX", "en_US"])


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    """Settings with explicit values so the local environment cannot leak in."""
    return AnalyticsSettings(
        hierarchy_cache_ttl_seconds=300,
        analytics_cache_ttl_seconds=600,
        cache_max_entries=100,
        db_schema="public",
        goal_total_target=60000,
        goal_deadline=None,
    )


class HierarchyRowFactory:
    """Build nested gateway rows (lider → brigadista → movilizador → ciudadano)."""

    def __init__(self, faker: Faker, now: datetime) -> None:
        self._faker = faker
        self._now = now
        self._ids = itertools.count(1)

    def _base(self, prefix: str, *, days_ago: int, **fields: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": f"{prefix}-{next(self._ids)}",
            "nombre": self._faker.name(),
            "created_at": self._now - timedelta(days=days_ago),
        }
        record.update(fields)
        return record

    def citizen(self, *, days_ago: int = 1) -> dict[str, Any]:
        return self._base("c", days_ago=days_ago)

    def movilizador(
        self, *, citizens: int = 0, days_ago: int = 10, **fields: Any
    ) -> dict[str, Any]:
        record = self._base("m", days_ago=days_ago, **fields)
        record["ciudadanos"] = [self.citizen() for _ in range(citizens)]
        return record

    def brigadista(
        self,
        *,
        movilizadores: list[dict[str, Any]] | None = None,
        days_ago: int = 10,
        **fields: Any,
    ) -> dict[str, Any]:
        record = self._base("b", days_ago=days_ago, **fields)
        record["movilizadores"] = list(movilizadores or [])
        return record

    def lider(
        self,
        *,
        brigadistas: list[dict[str, Any]] | None = None,
        days_ago: int = 10,
        **fields: Any,
    ) -> dict[str, Any]:
        record = self._base("l", days_ago=days_ago, **fields)
        record["brigadistas"] = list(brigadistas or [])
        return record

    def split_three_seven_network(self) -> list[dict[str, Any]]:
        """One lider, two brigadistas, each with one movilizador holding 3 and 7 citizens."""
        return [
            self.lider(
                brigadistas=[
                    self.brigadista(movilizadores=[self.movilizador(citizens=3)]),
                    self.brigadista(movilizadores=[self.movilizador(citizens=7)]),
                ]
            )
        ]

    def three_seven_network(self) -> list[dict[str, Any]]:
        """One lider, one brigadista, two movilizadores holding 3 and 7 citizens."""
        return [
            self.lider(
                brigadistas=[
                    self.brigadista(
                        movilizadores=[
                            self.movilizador(citizens=3),
                            self.movilizador(citizens=7),
                        ]
                    )
                ]
            )
        ]


@pytest.fixture
def rows(faker: Faker, fixed_now: datetime) -> HierarchyRowFactory:
    return HierarchyRowFactory(faker, fixed_now)


class FakeAcquire:
    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def __aenter__(self) -> Any:
        return self._conn

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        return None


class FakePool:
    """Pool double handing out one shared connection object."""

    def __init__(self, conn: Any = None) -> None:
        self.conn = conn if conn is not None else object()
        self.acquire_calls = 0

    def acquire(self) -> FakeAcquire:
        self.acquire_calls += 1
        return FakeAcquire(self.conn)


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()


@pytest_asyncio.fixture
async def db_pool() -> AsyncIterator[asyncpg.Pool]:
    """Initialise the shared asyncpg pool for database-centric tests."""
    try:
        load_dotenv(override=False)
        config = PoolConfig.model_validate({})  # Load from environment variables
    except (ValueError, RuntimeError) as exc:
        pytest.skip(f"Skipping database tests: {exc}")

    pool = await init_pool(config)
    try:
        yield pool
    finally:
        await close_pool()


@pytest_asyncio.fixture
async def db_connection(db_pool: asyncpg.Pool) -> AsyncIterator[asyncpg.Connection]:
    """Yield a transaction-scoped connection for database tests."""
    async with db_pool.acquire() as connection:
        transaction = connection.transaction()
        await transaction.start()
        try:
            yield connection
        finally:
            await transaction.rollback()
