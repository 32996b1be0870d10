"""
Tests for the REST remote store against a mocked HTTP transport.

Run with: pytest tests/test_rest_store.py -v
"""
import json

import httpx
import pytest

from adapters.base import RemoteStoreError
from adapters.rest import RestRemoteStore


def _store(handler, retry_attempts=1):
    return RestRemoteStore(
        base_url="https://example.test/",
        api_key="key-123",
        bucket="project-images",
        transport=httpx.MockTransport(handler),
        retry_attempts=retry_attempts,
        retry_wait=0,
    )


class TestEntries:

    @pytest.mark.asyncio
    async def test_select_rows_query(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json=[{"id": "r1"}])

        store = _store(handler)
        rows = await store.select_rows("p1")
        await store.aclose()

        req = seen["request"]
        assert rows == [{"id": "r1"}]
        assert req.method == "GET"
        assert req.url.path == "/rest/v1/entries"
        assert req.url.params["project_id"] == "eq.p1"
        assert req.url.params["order"] == "created_at.desc"
        assert req.headers["apikey"] == "key-123"
        assert req.headers["Authorization"] == "Bearer key-123"

    @pytest.mark.asyncio
    async def test_upsert_rows_merges_duplicates(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(201)

        store = _store(handler)
        await store.upsert_rows([{"id": "r1", "srno": "1"}])
        await store.aclose()

        req = seen["request"]
        assert req.method == "POST"
        assert req.url.params["on_conflict"] == "id"
        assert "merge-duplicates" in req.headers["Prefer"]
        assert json.loads(req.content) == [{"id": "r1", "srno": "1"}]

    @pytest.mark.asyncio
    async def test_upsert_empty_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(201)

        store = _store(handler)
        await store.upsert_rows([])
        await store.aclose()
        assert calls == []

    @pytest.mark.asyncio
    async def test_delete_row(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(204)

        store = _store(handler)
        await store.delete_row("r1")
        await store.aclose()
        assert seen["request"].method == "DELETE"
        assert seen["request"].url.params["id"] == "eq.r1"


class TestBlobs:

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json={"Key": "x"})

        store = _store(handler)
        url = await store.upload_blob(b"img", "p1/before/1.jpg", "image/jpeg")
        await store.aclose()

        assert url == "https://example.test/storage/v1/object/public/project-images/p1/before/1.jpg"
        assert seen["request"].url.path == "/storage/v1/object/project-images/p1/before/1.jpg"
        assert seen["request"].headers["Content-Type"] == "image/jpeg"
        assert seen["request"].content == b"img"


class TestProjects:

    @pytest.mark.asyncio
    async def test_get_project_missing(self):
        store = _store(lambda request: httpx.Response(200, json=[]))
        assert await store.get_project("nope") is None
        await store.aclose()

    @pytest.mark.asyncio
    async def test_update_project_missing(self):
        store = _store(lambda request: httpx.Response(200, json=[]))
        with pytest.raises(RemoteStoreError) as exc:
            await store.update_project("nope", {"name": "x"})
        await store.aclose()
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_create_project(self):
        def handler(request):
            body = json.loads(request.content)
            return httpx.Response(201, json=[dict(body[0], id="p1")])

        store = _store(handler)
        project = await store.create_project("Line 4", "", "hash")
        await store.aclose()
        assert project["id"] == "p1"
        assert project["name"] == "Line 4"


class TestErrors:

    @pytest.mark.asyncio
    async def test_http_error_is_mapped(self):
        store = _store(lambda request: httpx.Response(409, json={"message": "duplicate key"}))
        with pytest.raises(RemoteStoreError) as exc:
            await store.upsert_rows([{"id": "r1"}])
        await store.aclose()
        assert exc.value.status_code == 409
        assert "duplicate key" in exc.value.detail

    @pytest.mark.asyncio
    async def test_timeout_is_504(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        store = _store(handler)
        with pytest.raises(RemoteStoreError) as exc:
            await store.select_rows("p1")
        await store.aclose()
        assert exc.value.status_code == 504

    @pytest.mark.asyncio
    async def test_connection_error_is_502(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        store = _store(handler)
        with pytest.raises(RemoteStoreError) as exc:
            await store.ping()
        await store.aclose()
        assert exc.value.status_code == 502

    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            RestRemoteStore(base_url="", api_key="k")


class TestRetries:

    @pytest.mark.asyncio
    async def test_transient_status_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json=[{"id": "r1"}])

        store = _store(handler, retry_attempts=3)
        rows = await store.select_rows("p1")
        await store.aclose()
        assert rows == [{"id": "r1"}]
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_with_last_status(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, json={"message": "down"})

        store = _store(handler, retry_attempts=2)
        with pytest.raises(RemoteStoreError) as exc:
            await store.ping()
        await store.aclose()
        assert exc.value.status_code == 503
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"message": "bad filter"})

        store = _store(handler, retry_attempts=3)
        with pytest.raises(RemoteStoreError):
            await store.select_rows("p1")
        await store.aclose()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_create_project_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        store = _store(handler, retry_attempts=3)
        with pytest.raises(RemoteStoreError):
            await store.create_project("Line 4", "", "hash")
        await store.aclose()
        assert len(calls) == 1
