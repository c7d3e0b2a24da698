"""Vector store contract and backend selection.

Backends (Qdrant, Pinecone, LanceDB) each implement :class:`VectorStore`.
Network-class failures surface as :class:`VectorStoreUnavailableError`; the
store never retries internally, callers decide.
"""

from typing import Protocol, runtime_checkable

import httpx

from ..config.settings import VectorStoreConfig
from .cancellation import CancellationToken
from .exceptions import (
    ConfigurationError,
    VectorStoreAuthError,
    VectorStoreError,
    VectorStoreUnavailableError,
)
from .models import IndexedPoint, PointFilter, SearchHit


@runtime_checkable
class VectorStore(Protocol):
    """Durable collection of (id, vector, payload) points."""

    @property
    def name(self) -> str: ...

    async def health_check(self, token: CancellationToken | None = None) -> None: ...

    async def ensure_collection(
        self, name: str, vector_size: int, token: CancellationToken | None = None
    ) -> None: ...

    async def upsert(
        self,
        collection: str,
        points: list[IndexedPoint],
        token: CancellationToken | None = None,
    ) -> None: ...

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> list[SearchHit]: ...

    async def delete_by_filter(
        self,
        collection: str,
        filter: PointFilter,
        token: CancellationToken | None = None,
    ) -> None: ...

    async def delete_points(
        self,
        collection: str,
        ids: list[str],
        token: CancellationToken | None = None,
    ) -> None: ...

    async def count_points(
        self,
        collection: str,
        filter: PointFilter | None = None,
        token: CancellationToken | None = None,
    ) -> int: ...

    async def aclose(self) -> None: ...


def raise_for_store_status(response: httpx.Response, operation: str) -> None:
    """Translate a non-2xx store response into the error taxonomy.

    Raises:
        VectorStoreAuthError: On 401/403
        VectorStoreError: On any other non-2xx status, with the code attached
    """
    if response.is_success:
        return

    body = response.text.strip()[:500]
    message = f"{operation} failed with HTTP {response.status_code}: {body}"
    if response.status_code in (401, 403):
        raise VectorStoreAuthError(message, status_code=response.status_code)
    raise VectorStoreError(message, status_code=response.status_code)


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    operation: str,
    **kwargs,
) -> httpx.Response:
    """Send a store request, mapping network failures to unavailability.

    Raises:
        VectorStoreUnavailableError: On connect/timeout/protocol failures
        VectorStoreAuthError: On 401/403
        VectorStoreError: On any other non-2xx status
    """
    try:
        response = await client.request(method, url, **kwargs)
    except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as e:
        raise VectorStoreUnavailableError(
            f"{operation} failed: vector store unreachable ({type(e).__name__}: {e})"
        ) from e
    raise_for_store_status(response, operation)
    return response


def create_vector_store(
    config: VectorStoreConfig,
    client: httpx.AsyncClient | None = None,
) -> VectorStore:
    """Create the vector store selected by configuration.

    Args:
        config: Vector store settings
        client: Optional shared HTTP client for REST backends

    Returns:
        Vector store instance

    Raises:
        ConfigurationError: If required settings for the backend are missing
    """
    if config.provider == "qdrant":
        from .qdrant_backend import QdrantVectorStore

        if not config.url:
            raise ConfigurationError("Qdrant vector store requires a url")
        return QdrantVectorStore(
            url=config.url,
            api_key=config.api_key,
            timeout=config.timeout,
            client=client,
        )

    if config.provider == "pinecone":
        from .pinecone_backend import PineconeVectorStore

        if not config.url or not config.api_key:
            raise ConfigurationError(
                "Pinecone vector store requires the index host url and an api_key"
            )
        return PineconeVectorStore(
            host=config.url,
            api_key=config.api_key,
            timeout=config.timeout,
            client=client,
        )

    from .lancedb_backend import LanceVectorStore

    return LanceVectorStore(config.resolved_path())
