from __future__ import annotations

from typing import Any

import pytest

from src.config.db_settings import PoolConfig
from src.db import pool as pool_module


class _CatalogConnection:
    """Answers ``to_regclass`` lookups, recording each qualified table name."""

    def __init__(self, *, missing: set[str] | None = None) -> None:
        self.missing = missing or set()
        self.checked: list[str] = []

    async def fetchval(self, query: str, qualified_name: str) -> bool:
        self.checked.append(qualified_name)
        return qualified_name.split(".", 1)[1] not in self.missing


class _Acquire:
    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def __aenter__(self) -> Any:
        return self._conn

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class _ClosablePool:
    def __init__(self, conn: Any) -> None:
        self._conn = conn
        self.closed = False

    def acquire(self) -> _Acquire:
        return _Acquire(self._conn)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _fresh_registry() -> None:
    pool_module._REGISTRY.clear()


def _config(**overrides: Any) -> PoolConfig:
    values: dict[str, Any] = {
        "DATABASE_URL": "postgresql://analytics@localhost/campaign",
        "DB_POOL_MIN_SIZE": 2,
        "DB_POOL_MAX_SIZE": 4,
        "DB_POOL_TIMEOUT_SECONDS": None,
        "DB_STATEMENT_TIMEOUT_MS": 5000,
        "DB_APPLICATION_NAME": "analytics-tests",
    }
    values.update(overrides)
    return PoolConfig.model_validate(values)


@pytest.mark.asyncio
async def test_one_pool_per_loop_with_configured_session(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[dict[str, Any]] = []

    async def fake_create_pool(**kwargs: Any) -> _ClosablePool:
        calls.append(kwargs)
        return _ClosablePool(_CatalogConnection())

    monkeypatch.setattr(pool_module.asyncpg, "create_pool", fake_create_pool)

    config = _config()
    first = await pool_module.init_pool(config)
    second = await pool_module.init_pool(config)

    assert first is second
    assert calls == [
        {
            "dsn": "postgresql://analytics@localhost/campaign",
            "min_size": 2,
            "max_size": 4,
            "timeout": None,
            "server_settings": {
                "application_name": "analytics-tests",
                "statement_timeout": "5000",
            },
        }
    ]

    await pool_module.close_pool()


@pytest.mark.asyncio
async def test_missing_tables_are_reported_for_schema(monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _CatalogConnection(missing={"ciudadanos"})
    warnings: list[tuple[str, dict[str, Any]]] = []

    async def fake_create_pool(**_: Any) -> _ClosablePool:
        return _ClosablePool(conn)

    class _RecordingLogger:
        def warning(self, event: str, **kwargs: Any) -> None:
            warnings.append((event, kwargs))

        def info(self, event: str, **kwargs: Any) -> None:
            return None

    monkeypatch.setattr(pool_module.asyncpg, "create_pool", fake_create_pool)
    monkeypatch.setattr(pool_module, "LOGGER", _RecordingLogger())

    await pool_module.init_pool(_config(), schema="campaign")

    assert conn.checked == [f"campaign.{table}" for table in pool_module.HIERARCHY_TABLES]
    assert warnings == [
        ("db.pool.tables_missing", {"schema": "campaign", "tables": ["ciudadanos"]})
    ]

    await pool_module.close_pool()


@pytest.mark.asyncio
async def test_close_pool_forgets_latest(monkeypatch: pytest.MonkeyPatch) -> None:
    created = _ClosablePool(_CatalogConnection())

    async def fake_create_pool(**_: Any) -> _ClosablePool:
        return created

    monkeypatch.setattr(pool_module.asyncpg, "create_pool", fake_create_pool)

    await pool_module.init_pool(_config(DB_POOL_MIN_SIZE=1, DB_POOL_MAX_SIZE=1))
    assert pool_module.get_pool() is created

    await pool_module.close_pool()

    assert created.closed is True
    with pytest.raises(RuntimeError):
        pool_module.get_pool()


@pytest.mark.asyncio
async def test_close_pool_without_pool_is_a_no_op() -> None:
    await pool_module.close_pool()

    with pytest.raises(RuntimeError):
        pool_module.get_pool()
