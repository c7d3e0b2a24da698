"""Embedding providers over HTTP (Ollama, OpenAI, Gemini).

Every provider satisfies :class:`EmbeddingProvider`. ``embed`` never raises
on service failures: after bounded retries it logs and returns ``None`` so the
pipeline can drop a single chunk. Cancellation is the only condition that
escapes, as :class:`OperationCancelledError`.
"""

import time
from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger

from ..config.defaults import (
    DIMENSION_PROBE_TEXT,
    EMBEDDING_MAX_ATTEMPTS,
    EMBEDDING_RETRY_DELAY,
    FALLBACK_EMBEDDING_DIMENSION,
    KNOWN_MODEL_DIMENSIONS,
)
from ..config.settings import EmbeddingConfig
from .cancellation import CancellationToken, run_cancellable
from .exceptions import ConfigurationError, EmbeddingError, OperationCancelledError
from .retry import retry_with_backoff


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns text into a fixed-length vector."""

    @property
    def name(self) -> str: ...

    @property
    def model(self) -> str: ...

    async def embed(
        self, text: str, token: CancellationToken | None = None
    ) -> list[float] | None: ...

    async def detect_dimension(self, token: CancellationToken | None = None) -> int: ...

    async def validate_connection(
        self, token: CancellationToken | None = None
    ) -> None: ...

    async def aclose(self) -> None: ...


def _raise_for_status(response: httpx.Response, provider: str) -> None:
    if response.is_success:
        return
    body = response.text.strip()
    raise EmbeddingError(
        f"{provider} embedding request failed with HTTP {response.status_code}: "
        f"{body[:500] or response.reason_phrase}",
        status_code=response.status_code,
    )


def _as_vector(values: Any, provider: str) -> list[float]:
    if not isinstance(values, list) or not values:
        raise EmbeddingError(f"{provider} returned no embedding")
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError) as e:
        raise EmbeddingError(f"{provider} returned a malformed embedding: {e}") from e


class _HttpEmbeddingClient:
    """Shared request/retry plumbing composed into each provider."""

    def __init__(
        self,
        provider: str,
        model: str,
        timeout: float,
        client: httpx.AsyncClient | None,
    ) -> None:
        self.provider = provider
        self.model = model
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def embed(
        self,
        text: str,
        request: Any,
        token: CancellationToken | None,
    ) -> list[float] | None:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        if token:
            token.check()

        started = time.perf_counter()
        try:
            vector = await retry_with_backoff(
                lambda: run_cancellable(request(text), token),
                max_attempts=EMBEDDING_MAX_ATTEMPTS,
                base_delay=EMBEDDING_RETRY_DELAY,
                token=token,
                description=f"{self.provider} embedding",
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.warning(f"{self.provider} embedding failed for model {self.model}: {e}")
            return None

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{self.provider} embedding completed in {elapsed_ms:.0f}ms")
        return vector

    async def detect_dimension(
        self,
        request: Any,
        token: CancellationToken | None,
    ) -> int:
        vector = await self.embed(DIMENSION_PROBE_TEXT, request, token)
        if vector:
            logger.debug(f"Detected embedding dimension {len(vector)} for {self.model}")
            return len(vector)

        fallback = KNOWN_MODEL_DIMENSIONS.get(self.model, FALLBACK_EMBEDDING_DIMENSION)
        logger.warning(
            f"Could not detect embedding dimension for {self.model}; "
            f"falling back to {fallback}"
        )
        return fallback

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class OllamaEmbeddingProvider:
    """Local Ollama server: ``POST {base_url}/embeddings`` with ``{model, prompt}``."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = _HttpEmbeddingClient("Ollama", model, timeout, client)

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def model(self) -> str:
        return self._http.model

    async def _request(self, text: str) -> list[float]:
        response = await self._http.client.post(
            f"{self.base_url}/embeddings",
            json={"model": self.model, "prompt": text},
        )
        _raise_for_status(response, "Ollama")
        return _as_vector(response.json().get("embedding"), "Ollama")

    async def embed(
        self, text: str, token: CancellationToken | None = None
    ) -> list[float] | None:
        return await self._http.embed(text, self._request, token)

    async def detect_dimension(self, token: CancellationToken | None = None) -> int:
        return await self._http.detect_dimension(self._request, token)

    async def validate_connection(self, token: CancellationToken | None = None) -> None:
        """Check the server answers ``GET {base_url}/tags``.

        Raises:
            EmbeddingError: If the server answers non-2xx
            httpx.HTTPError: If the server is unreachable
        """
        response = await run_cancellable(
            self._http.client.get(f"{self.base_url}/tags"), token
        )
        _raise_for_status(response, "Ollama")

    async def aclose(self) -> None:
        await self._http.aclose()


class OpenAIEmbeddingProvider:
    """OpenAI embeddings: ``POST {base_url}/embeddings`` with ``{model, input}``."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http = _HttpEmbeddingClient("OpenAI", model, timeout, client)

    @property
    def name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._http.model

    async def _request(self, text: str) -> list[float]:
        response = await self._http.client.post(
            f"{self.base_url}/embeddings",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"model": self.model, "input": text},
        )
        _raise_for_status(response, "OpenAI")
        data = response.json().get("data") or []
        if not data:
            raise EmbeddingError("OpenAI returned no embedding data")
        return _as_vector(data[0].get("embedding"), "OpenAI")

    async def embed(
        self, text: str, token: CancellationToken | None = None
    ) -> list[float] | None:
        return await self._http.embed(text, self._request, token)

    async def detect_dimension(self, token: CancellationToken | None = None) -> int:
        return await self._http.detect_dimension(self._request, token)

    async def validate_connection(self, token: CancellationToken | None = None) -> None:
        """Probe the API with a single embedding call.

        Raises:
            EmbeddingError: If the probe is rejected
            httpx.HTTPError: If the API is unreachable
        """
        await run_cancellable(self._request(DIMENSION_PROBE_TEXT), token)

    async def aclose(self) -> None:
        await self._http.aclose()


class GeminiEmbeddingProvider:
    """Gemini embeddings: ``POST {base_url}/models/{model}:embedContent``."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http = _HttpEmbeddingClient("Gemini", model, timeout, client)

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def model(self) -> str:
        return self._http.model

    async def _request(self, text: str) -> list[float]:
        model = self.model.removeprefix("models/")
        response = await self._http.client.post(
            f"{self.base_url}/models/{model}:embedContent",
            headers={"x-goog-api-key": self.api_key},
            json={
                "model": f"models/{model}",
                "content": {"parts": [{"text": text}]},
            },
        )
        _raise_for_status(response, "Gemini")
        embedding = response.json().get("embedding") or {}
        return _as_vector(embedding.get("values"), "Gemini")

    async def embed(
        self, text: str, token: CancellationToken | None = None
    ) -> list[float] | None:
        return await self._http.embed(text, self._request, token)

    async def detect_dimension(self, token: CancellationToken | None = None) -> int:
        return await self._http.detect_dimension(self._request, token)

    async def validate_connection(self, token: CancellationToken | None = None) -> None:
        """Probe the API with a single embedding call.

        Raises:
            EmbeddingError: If the probe is rejected
            httpx.HTTPError: If the API is unreachable
        """
        await run_cancellable(self._request(DIMENSION_PROBE_TEXT), token)

    async def aclose(self) -> None:
        await self._http.aclose()


def create_embedding_provider(
    config: EmbeddingConfig,
    client: httpx.AsyncClient | None = None,
) -> EmbeddingProvider:
    """Create the provider selected by configuration.

    Args:
        config: Embedding settings
        client: Optional shared HTTP client (tests inject a mock transport)

    Returns:
        Embedding provider instance

    Raises:
        ConfigurationError: If a cloud provider has no API key
    """
    base_url = config.resolved_base_url()
    model = config.resolved_model()

    if config.provider == "ollama":
        return OllamaEmbeddingProvider(base_url, model, config.timeout, client)

    if not config.api_key:
        raise ConfigurationError(
            f"Embedding provider '{config.provider}' requires an api_key",
            context={"provider": config.provider},
        )

    if config.provider == "openai":
        return OpenAIEmbeddingProvider(
            config.api_key, model, base_url, config.timeout, client
        )
    return GeminiEmbeddingProvider(config.api_key, model, base_url, config.timeout, client)
