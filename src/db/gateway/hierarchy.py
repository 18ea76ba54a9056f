from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Mapping, Sequence, cast

import asyncpg
import structlog

from src.infra.result import DatabaseError, QueryTimeoutError, async_returns_result
from src.infra.types.db import ConnectionProtocol

LOGGER = structlog.get_logger(__name__)

NestedRows = list[dict[str, Any]]

_TIMEOUTS: dict[type[Exception], type[DatabaseError]] = {
    asyncpg.exceptions.QueryCanceledError: QueryTimeoutError,
    asyncio.TimeoutError: QueryTimeoutError,
}


def _record_to_dict(record: Mapping[str, Any]) -> dict[str, Any]:
    return dict(record.items())


def _group_by(records: Sequence[dict[str, Any]], key: str) -> dict[Any, list[dict[str, Any]]]:
    grouped: dict[Any, list[dict[str, Any]]] = defaultdict(list)
    for record in records:
        grouped[record.get(key)].append(record)
    return grouped


class HierarchyGateway:
    """Read the lider → brigadista → movilizador → ciudadano tables as nested rows.

    One query per level keeps the payload flat on the wire; rows are nested in
    Python under ``brigadistas`` / ``movilizadores`` / ``ciudadanos``. Every
    level is ordered by ``created_at`` descending.
    """

    def __init__(self, *, schema: str = "public") -> None:
        self._schema = schema

    @async_returns_result(DatabaseError, exception_map=_TIMEOUTS)
    async def fetch_hierarchy(
        self,
        connection: ConnectionProtocol,
        *,
        regions: Sequence[str] | None = None,
    ) -> NestedRows:
        lideres = await self._fetch_lideres(connection, regions)
        if not lideres:
            return []

        brigadistas = await self._fetch_children(
            connection, "brigadistas", "lider_id", [row["id"] for row in lideres]
        )
        movilizadores = await self._fetch_children(
            connection, "movilizadores", "brigadista_id", [row["id"] for row in brigadistas]
        )
        ciudadanos = await self._fetch_children(
            connection,
            "ciudadanos",
            "movilizador_id",
            [row["id"] for row in movilizadores],
            columns="id, movilizador_id, created_at",
        )

        ciudadanos_by_parent = _group_by(ciudadanos, "movilizador_id")
        for movilizador in movilizadores:
            movilizador["ciudadanos"] = ciudadanos_by_parent.get(movilizador["id"], [])

        movilizadores_by_parent = _group_by(movilizadores, "brigadista_id")
        for brigadista in brigadistas:
            brigadista["movilizadores"] = movilizadores_by_parent.get(brigadista["id"], [])

        brigadistas_by_parent = _group_by(brigadistas, "lider_id")
        for lider in lideres:
            lider["brigadistas"] = brigadistas_by_parent.get(lider["id"], [])

        LOGGER.debug(
            "gateway.hierarchy.fetched",
            lideres=len(lideres),
            brigadistas=len(brigadistas),
            movilizadores=len(movilizadores),
            ciudadanos=len(ciudadanos),
        )
        return lideres

    async def _fetch_lideres(
        self, connection: ConnectionProtocol, regions: Sequence[str] | None
    ) -> list[dict[str, Any]]:
        if regions:
            sql = f"""
                SELECT *
                FROM {self._schema}.lideres
                WHERE entidad = ANY($1::text[])
                ORDER BY created_at DESC
            """
            records = await connection.fetch(sql, list(regions))
        else:
            sql = f"SELECT * FROM {self._schema}.lideres ORDER BY created_at DESC"
            records = await connection.fetch(sql)
        return [_record_to_dict(cast(Mapping[str, Any], record)) for record in records]

    async def _fetch_children(
        self,
        connection: ConnectionProtocol,
        table: str,
        parent_column: str,
        parent_ids: list[Any],
        *,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        if not parent_ids:
            return []
        sql = f"""
            SELECT {columns}
            FROM {self._schema}.{table}
            WHERE {parent_column} = ANY($1)
            ORDER BY created_at DESC
        """
        records = await connection.fetch(sql, parent_ids)
        return [_record_to_dict(cast(Mapping[str, Any], record)) for record in records]


__all__ = ["HierarchyGateway", "NestedRows"]
