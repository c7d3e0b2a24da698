"""Embedded LanceDB vector store (local, no server required).

LanceDB is synchronous, so every table operation runs in a worker thread
via ``asyncio.to_thread``. One table per collection.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import lancedb
import pyarrow as pa
from loguru import logger

from .cancellation import CancellationToken, run_cancellable
from .exceptions import VectorStoreError
from .models import IndexedPoint, PointFilter, PointPayload, SearchHit

T = TypeVar("T")

# Payload wire name -> table column
_COLUMN_FOR_FIELD = {"repoId": "repo_id", "filePath": "file_path"}


def _create_lance_schema(vector_dim: int) -> pa.Schema:
    """Create the table schema for a given vector dimension."""
    return pa.schema(
        [
            pa.field("id", pa.string()),
            pa.field("vector", pa.list_(pa.float32(), vector_dim)),
            pa.field("file_path", pa.string()),
            pa.field("content", pa.string()),
            pa.field("line_start", pa.int32()),
            pa.field("line_end", pa.int32()),
            pa.field("repo_id", pa.string()),
            pa.field("commit", pa.string()),
            pa.field("type", pa.string()),
        ]
    )


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def to_where_clause(filter: PointFilter | None) -> str | None:
    """Translate a payload filter into a LanceDB SQL predicate."""
    if filter is None or filter.is_empty():
        return None
    return " AND ".join(
        f"{_COLUMN_FOR_FIELD[key]} = {_quote(value)}"
        for key, value in filter.conditions().items()
    )


def _point_to_row(point: IndexedPoint) -> dict[str, Any]:
    payload = point.payload
    return {
        "id": point.id,
        "vector": [float(v) for v in point.vector],
        "file_path": payload.file_path,
        "content": payload.content,
        "line_start": payload.line_start,
        "line_end": payload.line_end,
        "repo_id": payload.repo_id,
        "commit": payload.commit,
        "type": payload.type,
    }


def _row_to_payload(row: dict[str, Any]) -> PointPayload:
    return PointPayload(
        file_path=row.get("file_path") or "",
        content=row.get("content") or "",
        line_start=int(row.get("line_start") or 0),
        line_end=int(row.get("line_end") or 0),
        repo_id=row.get("repo_id") or "",
        commit=row.get("commit"),
        type=row.get("type") or "file",
    )


class LanceVectorStore:
    """LanceDB tables under a local directory."""

    def __init__(self, persist_directory: Path) -> None:
        """Initialize the store.

        Args:
            persist_directory: Directory holding the LanceDB dataset
        """
        self.persist_directory = Path(persist_directory)
        self._db: Any = None

    @property
    def name(self) -> str:
        return "lancedb"

    async def _run(
        self,
        operation: str,
        func: Callable[..., T],
        *args: Any,
        token: CancellationToken | None = None,
    ) -> T:
        try:
            return await run_cancellable(asyncio.to_thread(func, *args), token)
        except VectorStoreError:
            raise
        except (OSError, RuntimeError, ValueError) as e:
            raise VectorStoreError(f"LanceDB {operation} failed: {e}") from e

    def _connect(self) -> Any:
        if self._db is None:
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(str(self.persist_directory))
        return self._db

    def _list_table_names(self) -> list[str]:
        """Return table names from LanceDB, handling API variations."""
        db = self._connect()
        if hasattr(db, "list_tables"):
            tables_response = db.list_tables()
            if hasattr(tables_response, "tables"):
                return list(tables_response.tables)
            return list(tables_response)
        return list(db.table_names())

    def _open_table(self, name: str) -> Any | None:
        if name not in self._list_table_names():
            return None
        return self._connect().open_table(name)

    async def health_check(self, token: CancellationToken | None = None) -> None:
        """Open (creating if needed) the LanceDB directory.

        Raises:
            VectorStoreError: If the directory cannot be opened
        """
        await self._run("health check", self._list_table_names, token=token)

    def _ensure_table(self, name: str, vector_size: int) -> bool:
        table = self._open_table(name)
        if table is not None:
            vector_type = table.schema.field("vector").type
            existing = getattr(vector_type, "list_size", None)
            if existing not in (None, -1) and existing != vector_size:
                raise VectorStoreError(
                    f"LanceDB table '{name}' has vector size {existing}, "
                    f"expected {vector_size}"
                )
            return False
        self._connect().create_table(
            name, schema=_create_lance_schema(vector_size), exist_ok=True
        )
        return True

    async def ensure_collection(
        self, name: str, vector_size: int, token: CancellationToken | None = None
    ) -> None:
        created = await self._run(
            "ensure collection", self._ensure_table, name, vector_size, token=token
        )
        if created:
            logger.info(f"Created LanceDB table '{name}' (size={vector_size})")

    def _upsert_rows(self, collection: str, rows: list[dict[str, Any]]) -> None:
        table = self._open_table(collection)
        if table is None:
            raise VectorStoreError(f"LanceDB table '{collection}' does not exist")
        data = pa.Table.from_pylist(rows, schema=table.schema)
        (
            table.merge_insert("id")
            .when_matched_update_all()
            .when_not_matched_insert_all()
            .execute(data)
        )

    async def upsert(
        self,
        collection: str,
        points: list[IndexedPoint],
        token: CancellationToken | None = None,
    ) -> None:
        if not points:
            return
        rows = [_point_to_row(p) for p in points]
        await self._run("upsert", self._upsert_rows, collection, rows, token=token)

    def _search(
        self, collection: str, vector: list[float], limit: int, where: str | None
    ) -> list[dict[str, Any]]:
        table = self._open_table(collection)
        if table is None:
            return []
        query = table.search(vector).metric("cosine").limit(limit)
        if where:
            query = query.where(where, prefilter=True)
        return query.to_list()

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> list[SearchHit]:
        rows = await self._run(
            "search",
            self._search,
            collection,
            vector,
            limit,
            to_where_clause(filter),
            token=token,
        )
        hits = []
        for row in rows:
            # _distance is cosine distance; cosine similarity = 1 - distance
            distance = float(row.get("_distance", 0.0))
            hits.append(
                SearchHit(
                    id=str(row.get("id")),
                    score=1.0 - distance,
                    payload=_row_to_payload(row),
                )
            )
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits

    def _delete(self, collection: str, where: str) -> None:
        table = self._open_table(collection)
        if table is None:
            return
        table.delete(where)

    async def delete_by_filter(
        self,
        collection: str,
        filter: PointFilter,
        token: CancellationToken | None = None,
    ) -> None:
        where = to_where_clause(filter)
        if where is None:
            raise ValueError("Refusing to delete with an empty filter")
        await self._run("delete", self._delete, collection, where, token=token)

    async def delete_points(
        self,
        collection: str,
        ids: list[str],
        token: CancellationToken | None = None,
    ) -> None:
        if not ids:
            return
        where = f"id IN ({', '.join(_quote(i) for i in ids)})"
        await self._run("delete", self._delete, collection, where, token=token)

    def _count(self, collection: str, where: str | None) -> int:
        table = self._open_table(collection)
        if table is None:
            return 0
        if where:
            return int(table.count_rows(where))
        return int(table.count_rows())

    async def count_points(
        self,
        collection: str,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> int:
        return await self._run(
            "count", self._count, collection, to_where_clause(filter), token=token
        )

    async def aclose(self) -> None:
        self._db = None
