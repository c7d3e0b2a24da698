"""Unit tests for the Qdrant REST backend (httpx.MockTransport)."""

import json

import httpx
import pytest

from semantic_index.core.exceptions import (
    VectorStoreAuthError,
    VectorStoreError,
    VectorStoreUnavailableError,
)
from semantic_index.core.models import IndexedPoint, PointFilter, PointPayload
from semantic_index.core.qdrant_backend import QdrantVectorStore, to_qdrant_filter


def make_point(point_id: str, file_path: str = "src/a.py") -> IndexedPoint:
    return IndexedPoint(
        id=point_id,
        vector=[0.1, 0.2],
        payload=PointPayload(
            file_path=file_path,
            content="code",
            line_start=1,
            line_end=3,
            repo_id="repo",
            commit="abc",
        ),
    )


class Recorder:
    """Mock transport handler recording requests and replaying responses."""

    def __init__(self, responses: dict[tuple[str, str], httpx.Response]) -> None:
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        return self.responses.get(key, httpx.Response(200, json={"result": {}}))

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def make_store(recorder: Recorder, api_key: str | None = None) -> QdrantVectorStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return QdrantVectorStore("http://qdrant:6333/", api_key=api_key, client=client)


class TestQdrantFilter:
    def test_empty_filter(self) -> None:
        assert to_qdrant_filter(None) is None
        assert to_qdrant_filter(PointFilter()) is None

    def test_must_clauses(self) -> None:
        result = to_qdrant_filter(PointFilter(repo_id="r", file_path="a.py"))

        assert result == {
            "must": [
                {"key": "repoId", "match": {"value": "r"}},
                {"key": "filePath", "match": {"value": "a.py"}},
            ]
        }


class TestQdrantCollections:
    """Tests for health checks and collection management."""

    @pytest.mark.asyncio
    async def test_api_key_header_sent(self) -> None:
        recorder = Recorder({})
        store = make_store(recorder, api_key="secret")

        await store.health_check()

        assert recorder.requests[0].headers["api-key"] == "secret"
        assert str(recorder.requests[0].url) == "http://qdrant:6333/collections"

    @pytest.mark.asyncio
    async def test_health_check_tolerates_auth_errors(self) -> None:
        recorder = Recorder({("GET", "/collections"): httpx.Response(401, text="no")})

        await make_store(recorder).health_check()

    @pytest.mark.asyncio
    async def test_unreachable_store(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        store = QdrantVectorStore("http://qdrant:6333", client=client)

        with pytest.raises(VectorStoreUnavailableError):
            await store.health_check()

    @pytest.mark.asyncio
    async def test_creates_missing_collection(self) -> None:
        recorder = Recorder(
            {
                ("GET", "/collections"): httpx.Response(
                    200, json={"result": {"collections": [{"name": "other"}]}}
                ),
            }
        )
        store = make_store(recorder)

        await store.ensure_collection("codebase", 768)

        create = recorder.requests[-1]
        assert create.method == "PUT"
        assert create.url.path == "/collections/codebase"
        assert recorder.body() == {"vectors": {"size": 768, "distance": "Cosine"}}

    @pytest.mark.asyncio
    async def test_existing_collection_not_recreated(self) -> None:
        recorder = Recorder(
            {
                ("GET", "/collections"): httpx.Response(
                    200, json={"result": {"collections": [{"name": "codebase"}]}}
                ),
            }
        )

        await make_store(recorder).ensure_collection("codebase", 768)

        assert [r.method for r in recorder.requests] == ["GET"]

    @pytest.mark.asyncio
    async def test_concurrent_creation_is_success(self) -> None:
        recorder = Recorder(
            {
                ("GET", "/collections"): httpx.Response(
                    200, json={"result": {"collections": []}}
                ),
                ("PUT", "/collections/codebase"): httpx.Response(
                    409, text="Collection `codebase` already exists!"
                ),
            }
        )

        await make_store(recorder).ensure_collection("codebase", 768)

    @pytest.mark.asyncio
    async def test_creation_failure_raises(self) -> None:
        recorder = Recorder(
            {
                ("GET", "/collections"): httpx.Response(
                    200, json={"result": {"collections": []}}
                ),
                ("PUT", "/collections/codebase"): httpx.Response(500, text="disk full"),
            }
        )

        with pytest.raises(VectorStoreError) as exc_info:
            await make_store(recorder).ensure_collection("codebase", 768)
        assert exc_info.value.status_code == 500


class TestQdrantPoints:
    """Tests for point upsert, search, delete and count."""

    @pytest.mark.asyncio
    async def test_upsert_body(self) -> None:
        recorder = Recorder({})

        await make_store(recorder).upsert("codebase", [make_point("id-1")])

        request = recorder.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/collections/codebase/points"
        assert request.url.params["wait"] == "true"
        assert recorder.body() == {
            "points": [
                {
                    "id": "id-1",
                    "vector": [0.1, 0.2],
                    "payload": {
                        "filePath": "src/a.py",
                        "content": "code",
                        "lineStart": 1,
                        "lineEnd": 3,
                        "repoId": "repo",
                        "commit": "abc",
                        "type": "file",
                    },
                }
            ]
        }

    @pytest.mark.asyncio
    async def test_empty_upsert_skips_request(self) -> None:
        recorder = Recorder({})

        await make_store(recorder).upsert("codebase", [])

        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_upsert_auth_failure_raises(self) -> None:
        recorder = Recorder(
            {("PUT", "/collections/codebase/points"): httpx.Response(403, text="denied")}
        )

        with pytest.raises(VectorStoreAuthError):
            await make_store(recorder).upsert("codebase", [make_point("id-1")])

    @pytest.mark.asyncio
    async def test_search_parses_and_sorts_hits(self) -> None:
        recorder = Recorder(
            {
                ("POST", "/collections/codebase/points/search"): httpx.Response(
                    200,
                    json={
                        "result": [
                            {"id": "b", "score": 0.5, "payload": {"filePath": "b.py"}},
                            {"id": "a", "score": 0.9, "payload": {"filePath": "a.py"}},
                        ]
                    },
                )
            }
        )

        hits = await make_store(recorder).search(
            "codebase", [0.1, 0.2], 5, PointFilter(repo_id="repo")
        )

        assert [h.id for h in hits] == ["a", "b"]
        assert hits[0].file_path == "a.py"
        body = recorder.body()
        assert body["limit"] == 5
        assert body["with_payload"] is True
        assert body["filter"] == {"must": [{"key": "repoId", "match": {"value": "repo"}}]}

    @pytest.mark.asyncio
    async def test_delete_by_filter(self) -> None:
        recorder = Recorder({})

        await make_store(recorder).delete_by_filter(
            "codebase", PointFilter(repo_id="repo", file_path="a.py")
        )

        assert recorder.requests[0].url.path == "/collections/codebase/points/delete"
        assert recorder.body() == {
            "filter": {
                "must": [
                    {"key": "repoId", "match": {"value": "repo"}},
                    {"key": "filePath", "match": {"value": "a.py"}},
                ]
            }
        }

    @pytest.mark.asyncio
    async def test_delete_with_empty_filter_refused(self) -> None:
        with pytest.raises(ValueError):
            await make_store(Recorder({})).delete_by_filter("codebase", PointFilter())

    @pytest.mark.asyncio
    async def test_delete_points_and_missing_collection(self) -> None:
        recorder = Recorder(
            {
                ("POST", "/collections/gone/points/delete"): httpx.Response(
                    404, text="Not found"
                )
            }
        )
        store = make_store(recorder)

        await store.delete_points("codebase", ["x", "y"])
        await store.delete_points("gone", ["x"])

        assert json.loads(recorder.requests[0].content) == {"points": ["x", "y"]}

    @pytest.mark.asyncio
    async def test_count_points(self) -> None:
        recorder = Recorder(
            {
                ("POST", "/collections/codebase/points/count"): httpx.Response(
                    200, json={"result": {"count": 42}}
                ),
                ("POST", "/collections/gone/points/count"): httpx.Response(404),
            }
        )
        store = make_store(recorder)

        assert await store.count_points("codebase", PointFilter(repo_id="r")) == 42
        assert recorder.body(0)["exact"] is True
        assert await store.count_points("gone") == 0
