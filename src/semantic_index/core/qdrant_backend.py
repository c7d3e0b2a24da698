"""Qdrant vector store over the REST API."""

import time
from typing import Any

import httpx
from loguru import logger

from .cancellation import CancellationToken, run_cancellable
from .exceptions import VectorStoreAuthError, VectorStoreError
from .models import IndexedPoint, PointFilter, PointPayload, SearchHit
from .vector_store import send


def to_qdrant_filter(filter: PointFilter | None) -> dict[str, Any] | None:
    """Translate a payload filter into Qdrant's ``must`` clause form."""
    if filter is None or filter.is_empty():
        return None
    return {
        "must": [
            {"key": key, "match": {"value": value}}
            for key, value in filter.conditions().items()
        ]
    }


class QdrantVectorStore:
    """Self-hosted or cloud Qdrant, authenticated with the ``api-key`` header."""

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Qdrant client.

        Args:
            url: Qdrant base URL (e.g. ``http://localhost:6333``)
            api_key: Optional API key for Qdrant Cloud
            timeout: Per-request timeout in seconds
            client: Optional pre-built HTTP client
        """
        self.url = url.rstrip("/")
        self._headers = {"api-key": api_key} if api_key else {}
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "qdrant"

    async def _call(
        self,
        method: str,
        path: str,
        operation: str,
        token: CancellationToken | None,
        **kwargs,
    ) -> httpx.Response:
        started = time.perf_counter()
        response = await run_cancellable(
            send(
                self._client,
                method,
                f"{self.url}{path}",
                f"Qdrant {operation}",
                headers=self._headers,
                **kwargs,
            ),
            token,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"Qdrant {operation} completed in {elapsed_ms:.0f}ms")
        return response

    async def health_check(self, token: CancellationToken | None = None) -> None:
        """Check that Qdrant answers ``GET /collections``.

        Authentication failures are tolerated here (logged) so read-only
        status checks still work; writes will fail loudly later.

        Raises:
            VectorStoreUnavailableError: If Qdrant cannot be reached
            VectorStoreError: On other non-2xx responses
        """
        try:
            await self._call("GET", "/collections", "health check", token)
        except VectorStoreAuthError as e:
            logger.warning(f"Qdrant health check not authorized, continuing: {e}")

    async def _collection_names(self, token: CancellationToken | None) -> set[str]:
        response = await self._call("GET", "/collections", "list collections", token)
        collections = response.json().get("result", {}).get("collections", [])
        return {c.get("name") for c in collections}

    async def ensure_collection(
        self, name: str, vector_size: int, token: CancellationToken | None = None
    ) -> None:
        """Create the collection with cosine distance if it does not exist.

        Raises:
            VectorStoreError: If creation fails for a reason other than a race
        """
        if name in await self._collection_names(token):
            logger.debug(f"Qdrant collection '{name}' already exists")
            return

        try:
            await self._call(
                "PUT",
                f"/collections/{name}",
                "create collection",
                token,
                json={"vectors": {"size": vector_size, "distance": "Cosine"}},
            )
        except VectorStoreError as e:
            # Another caller created it between our check and create
            if e.status_code == 409 or (
                e.status_code == 400 and "already exists" in str(e)
            ):
                logger.debug(f"Qdrant collection '{name}' created concurrently")
                return
            raise
        logger.info(f"Created Qdrant collection '{name}' (size={vector_size})")

    async def upsert(
        self,
        collection: str,
        points: list[IndexedPoint],
        token: CancellationToken | None = None,
    ) -> None:
        if not points:
            return
        body = {
            "points": [
                {"id": p.id, "vector": p.vector, "payload": p.payload.to_dict()}
                for p in points
            ]
        }
        await self._call(
            "PUT",
            f"/collections/{collection}/points?wait=true",
            "upsert",
            token,
            json=body,
        )

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> list[SearchHit]:
        body: dict[str, Any] = {"vector": vector, "limit": limit, "with_payload": True}
        qdrant_filter = to_qdrant_filter(filter)
        if qdrant_filter:
            body["filter"] = qdrant_filter

        response = await self._call(
            "POST", f"/collections/{collection}/points/search", "search", token, json=body
        )
        hits = [
            SearchHit(
                id=str(item.get("id")),
                score=float(item.get("score", 0.0)),
                payload=PointPayload.from_dict(item.get("payload") or {}),
            )
            for item in response.json().get("result", [])
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits

    async def delete_by_filter(
        self,
        collection: str,
        filter: PointFilter,
        token: CancellationToken | None = None,
    ) -> None:
        qdrant_filter = to_qdrant_filter(filter)
        if qdrant_filter is None:
            raise ValueError("Refusing to delete with an empty filter")
        await self._delete(collection, {"filter": qdrant_filter}, token)

    async def delete_points(
        self,
        collection: str,
        ids: list[str],
        token: CancellationToken | None = None,
    ) -> None:
        if not ids:
            return
        await self._delete(collection, {"points": list(ids)}, token)

    async def _delete(
        self, collection: str, body: dict[str, Any], token: CancellationToken | None
    ) -> None:
        try:
            await self._call(
                "POST",
                f"/collections/{collection}/points/delete?wait=true",
                "delete",
                token,
                json=body,
            )
        except VectorStoreError as e:
            if e.status_code == 404:
                logger.debug(f"Qdrant collection '{collection}' missing; nothing to delete")
                return
            raise

    async def count_points(
        self,
        collection: str,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> int:
        body: dict[str, Any] = {"exact": True}
        qdrant_filter = to_qdrant_filter(filter)
        if qdrant_filter:
            body["filter"] = qdrant_filter
        try:
            response = await self._call(
                "POST", f"/collections/{collection}/points/count", "count", token, json=body
            )
        except VectorStoreError as e:
            if e.status_code == 404:
                return 0
            raise
        return int(response.json().get("result", {}).get("count", 0))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
