"""Pinecone vector store over the data-plane REST API.

Collections map to Pinecone namespaces inside one pre-provisioned index,
addressed by its host URL.
"""

import time
from typing import Any

import httpx
from loguru import logger

from ..config.defaults import PINECONE_MAX_CONTENT_BYTES
from .cancellation import CancellationToken, run_cancellable
from .exceptions import VectorStoreAuthError, VectorStoreError
from .models import IndexedPoint, PointFilter, PointPayload, SearchHit
from .vector_store import send

UPSERT_BATCH_SIZE = 100


def truncate_utf8(text: str, max_bytes: int = PINECONE_MAX_CONTENT_BYTES) -> str:
    """Cut ``text`` to at most ``max_bytes`` UTF-8 bytes on a character boundary."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def to_pinecone_filter(filter: PointFilter | None) -> dict[str, Any] | None:
    if filter is None or filter.is_empty():
        return None
    return {key: {"$eq": value} for key, value in filter.conditions().items()}


def to_pinecone_metadata(payload: PointPayload) -> dict[str, Any]:
    metadata = payload.to_dict()
    metadata["content"] = truncate_utf8(payload.content)
    # Pinecone rejects null metadata values
    return {key: value for key, value in metadata.items() if value is not None}


class PineconeVectorStore:
    """Pinecone index authenticated with the ``Api-Key`` header."""

    def __init__(
        self,
        host: str,
        api_key: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Pinecone client.

        Args:
            host: Index host URL (``https://<index>-<project>.svc.<env>.pinecone.io``)
            api_key: Pinecone API key
            timeout: Per-request timeout in seconds
            client: Optional pre-built HTTP client
        """
        host = host.rstrip("/")
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        self.host = host
        self._headers = {"Api-Key": api_key}
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "pinecone"

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
                f"{self.host}{path}",
                f"Pinecone {operation}",
                headers=self._headers,
                **kwargs,
            ),
            token,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"Pinecone {operation} completed in {elapsed_ms:.0f}ms")
        return response

    async def _describe(
        self, token: CancellationToken | None, filter: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        if filter:
            response = await self._call(
                "POST",
                "/describe_index_stats",
                "describe index stats",
                token,
                json={"filter": filter},
            )
        else:
            response = await self._call(
                "GET", "/describe_index_stats", "describe index stats", token
            )
        return response.json()

    async def health_check(self, token: CancellationToken | None = None) -> None:
        """Check the index answers ``describe_index_stats``.

        Raises:
            VectorStoreUnavailableError: If Pinecone cannot be reached
            VectorStoreError: On non-2xx responses other than 401/403
        """
        try:
            await self._describe(token)
        except VectorStoreAuthError as e:
            logger.warning(f"Pinecone health check not authorized, continuing: {e}")

    async def ensure_collection(
        self, name: str, vector_size: int, token: CancellationToken | None = None
    ) -> None:
        """Verify the index dimension; namespaces are created on first upsert.

        Raises:
            VectorStoreError: If the index dimension differs from ``vector_size``
        """
        stats = await self._describe(token)
        dimension = stats.get("dimension")
        if dimension and int(dimension) != vector_size:
            raise VectorStoreError(
                f"Pinecone index dimension {dimension} does not match "
                f"embedding dimension {vector_size}",
                context={"namespace": name},
            )
        logger.debug(f"Pinecone namespace '{name}' ready (dimension={dimension})")

    async def upsert(
        self,
        collection: str,
        points: list[IndexedPoint],
        token: CancellationToken | None = None,
    ) -> None:
        """Upsert in batches, all or nothing.

        Only the first batch honours ``token``; once a batch is committed the
        rest run to completion. If a later batch fails, the ids already
        written are deleted before the error propagates.
        """
        written: list[str] = []
        for start in range(0, len(points), UPSERT_BATCH_SIZE):
            batch = points[start : start + UPSERT_BATCH_SIZE]
            body = {
                "namespace": collection,
                "vectors": [
                    {
                        "id": p.id,
                        "values": p.vector,
                        "metadata": to_pinecone_metadata(p.payload),
                    }
                    for p in batch
                ],
            }
            try:
                await self._call(
                    "POST",
                    "/vectors/upsert",
                    "upsert",
                    None if written else token,
                    json=body,
                )
            except Exception:
                if written:
                    await self._rollback(collection, written)
                raise
            written.extend(p.id for p in batch)

    async def _rollback(self, collection: str, ids: list[str]) -> None:
        logger.warning(f"Pinecone upsert failed midway; removing {len(ids)} points")
        try:
            await self.delete_points(collection, ids)
        except VectorStoreError as e:
            logger.error(f"Could not roll back partial Pinecone upsert: {e}")

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> list[SearchHit]:
        body: dict[str, Any] = {
            "namespace": collection,
            "vector": vector,
            "topK": limit,
            "includeMetadata": True,
        }
        pinecone_filter = to_pinecone_filter(filter)
        if pinecone_filter:
            body["filter"] = pinecone_filter

        response = await self._call("POST", "/query", "query", token, json=body)
        hits = [
            SearchHit(
                id=str(match.get("id")),
                score=float(match.get("score", 0.0)),
                payload=PointPayload.from_dict(match.get("metadata") or {}),
            )
            for match in response.json().get("matches", [])
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits

    async def delete_by_filter(
        self,
        collection: str,
        filter: PointFilter,
        token: CancellationToken | None = None,
    ) -> None:
        pinecone_filter = to_pinecone_filter(filter)
        if pinecone_filter is None:
            raise ValueError("Refusing to delete with an empty filter")
        await self._call(
            "POST",
            "/vectors/delete",
            "delete",
            token,
            json={"namespace": collection, "filter": pinecone_filter},
        )

    async def delete_points(
        self,
        collection: str,
        ids: list[str],
        token: CancellationToken | None = None,
    ) -> None:
        if not ids:
            return
        await self._call(
            "POST",
            "/vectors/delete",
            "delete",
            token,
            json={"namespace": collection, "ids": list(ids)},
        )

    async def count_points(
        self,
        collection: str,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> int:
        stats = await self._describe(token, to_pinecone_filter(filter))
        namespace = stats.get("namespaces", {}).get(collection, {})
        return int(namespace.get("vectorCount", 0))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
