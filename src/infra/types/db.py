"""Structural typing protocols for the asyncpg pool and connection.

Only the read surface the hierarchy gateway touches is described. Real
``asyncpg`` objects satisfy these protocols at runtime, and so do the
``AsyncMock`` doubles used in tests.
"""

from __future__ import annotations

from typing import Any, AsyncContextManager, Protocol


class ConnectionProtocol(Protocol):
    async def fetch(
        self, query: Any, *args: Any, timeout: float | None = None  # noqa: ASYNC109
    ) -> list[Any]: ...

    async def fetchval(
        self,
        query: Any,
        *args: Any,
        column: int = 0,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> Any: ...


class PoolProtocol(Protocol):
    def acquire(
        self, *, timeout: float | None = None
    ) -> AsyncContextManager[ConnectionProtocol]: ...


__all__ = ["ConnectionProtocol", "PoolProtocol"]
