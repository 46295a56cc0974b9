"""PostgreSQL-backed record store with automatic table migration."""

from __future__ import annotations

import json
import threading
import uuid
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from enrichment_orchestrator.storage.base import KNOWN_TABLES, ensure_known_table


class PostgresRecordStore:
    """Persist entity rows as JSONB documents, one table per entity kind."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("ENRICHMENT_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper, self._sql = self._load_psycopg()

    def migrate(self) -> None:
        sql = self._sql
        with self._lock, self._connect() as conn:
            for table in sorted(KNOWN_TABLES):
                conn.execute(
                    sql.SQL(
                        """
                        CREATE TABLE IF NOT EXISTS {table} (
                            id TEXT PRIMARY KEY,
                            seq BIGSERIAL,
                            data JSONB NOT NULL,
                            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
                        )
                        """
                    ).format(table=sql.Identifier(table))
                )
                conn.execute(
                    sql.SQL(
                        "CREATE INDEX IF NOT EXISTS {index} ON {table} USING GIN (data)"
                    ).format(
                        index=sql.Identifier(f"idx_{table}_data"),
                        table=sql.Identifier(table),
                    )
                )

    def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ensure_known_table(table)
        sql = self._sql
        where, params = self._where_clause(filters or {})
        query = sql.SQL("SELECT data FROM {table}").format(table=sql.Identifier(table))
        if where is not None:
            query = query + sql.SQL(" WHERE ") + where
        if order_by:
            direction = sql.SQL(" DESC") if descending else sql.SQL(" ASC")
            query = query + sql.SQL(" ORDER BY data->{} ").format(sql.Literal(order_by))
            query = query + direction + sql.SQL(", seq") + direction
        else:
            query = query + sql.SQL(" ORDER BY seq ASC")
        if limit is not None:
            query = query + sql.SQL(" LIMIT %s")
            params.append(int(limit))

        with self._lock, self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._parse_document(row["data"]) for row in rows]

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        ensure_known_table(table)
        sql = self._sql
        document = dict(row)
        document.setdefault("id", str(uuid.uuid4()))
        document.setdefault("created_at", datetime.now(UTC).isoformat())
        with self._lock, self._connect() as conn:
            inserted = conn.execute(
                sql.SQL("INSERT INTO {table} (id, data) VALUES (%s, %s) RETURNING data").format(
                    table=sql.Identifier(table)
                ),
                (str(document["id"]), self._json_wrapper(document)),
            ).fetchone()
        if inserted is None:
            raise RuntimeError(f"Failed to persist row in {table}")
        return self._parse_document(inserted["data"])

    def update(
        self, table: str, record_id: str, changes: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        ensure_known_table(table)
        sql = self._sql
        with self._lock, self._connect() as conn:
            updated = conn.execute(
                sql.SQL("UPDATE {table} SET data = data || %s WHERE id = %s RETURNING data").format(
                    table=sql.Identifier(table)
                ),
                (self._json_wrapper(dict(changes)), record_id),
            ).fetchone()
        if updated is None:
            return None
        return self._parse_document(updated["data"])

    def delete(self, table: str, record_ids: Sequence[str]) -> int:
        ensure_known_table(table)
        ids = [str(record_id) for record_id in record_ids]
        if not ids:
            return 0
        sql = self._sql
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                sql.SQL("DELETE FROM {table} WHERE id = ANY(%s)").format(
                    table=sql.Identifier(table)
                ),
                (ids,),
            )
        return int(cursor.rowcount or 0)

    def _where_clause(self, filters: Mapping[str, Any]) -> tuple[Any, list[Any]]:
        sql = self._sql
        clauses = []
        params: list[Any] = []
        for column, expected in filters.items():
            field = sql.SQL("data->{}").format(sql.Literal(column))
            if expected is None:
                clauses.append(
                    sql.SQL("({field} IS NULL OR {field} = 'null'::jsonb)").format(field=field)
                )
            elif isinstance(expected, (list, tuple, set, frozenset)):
                values = list(expected)
                if not values:
                    clauses.append(sql.SQL("FALSE"))
                    continue
                placeholders = sql.SQL(", ").join(sql.Placeholder() for _ in values)
                clauses.append(
                    sql.SQL("{field} IN ({values})").format(field=field, values=placeholders)
                )
                params.extend(self._json_wrapper(value) for value in values)
            else:
                clauses.append(sql.SQL("{field} = %s").format(field=field))
                params.append(self._json_wrapper(expected))
        if not clauses:
            return None, params
        return sql.SQL(" AND ").join(clauses), params

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any, Any]:
        try:
            import psycopg
            from psycopg import sql
            from psycopg.rows import dict_row
            from psycopg.types.json import Jsonb
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Jsonb, sql

    @staticmethod
    def _parse_document(raw: Any) -> dict[str, Any]:
        if isinstance(raw, str):
            parsed = json.loads(raw)
        else:
            parsed = raw
        if not isinstance(parsed, dict):
            raise TypeError(f"Unsupported document value: {type(raw)!r}")
        return parsed
