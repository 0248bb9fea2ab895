"""Tests for FileApiClient — request shapes and status mapping, over httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from mapsketch.client import FileApiClient
from mapsketch.config import Settings
from mapsketch.errors import DocumentNotFoundError, FileApiError, UnauthorizedError


pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _event_loop():
    """Provide a fresh event loop for each test."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


def _run(coro):
    """Run an async coroutine synchronously on the current event loop."""
    loop = asyncio.get_event_loop()
    return loop.run_until_complete(coro)


def _client(handler, seen=None, **kwargs):
    def wrapped(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return handler(request)

    return FileApiClient(
        "http://files.test/", transport=httpx.MockTransport(wrapped), **kwargs,
    )


class TestRequests:
    """What goes over the wire."""

    def test_save(self):
        seen = []
        client = _client(lambda r: httpx.Response(200, json={"message": "File saved"}), seen)
        reply = _run(client.save_document("park", {"kind": "MapWithQuestions"}))
        assert reply == {"message": "File saved"}
        req = seen[0]
        assert req.method == "POST"
        assert req.url.path == "/save"
        assert json.loads(req.content) == {
            "fileName": "park",
            "geojsonData": {"kind": "MapWithQuestions"},
        }

    def test_load(self):
        seen = []
        client = _client(lambda r: httpx.Response(200, json={"type": "FeatureCollection"}), seen)
        doc = _run(client.load_document("park"))
        assert doc == {"type": "FeatureCollection"}
        assert seen[0].url.path == "/load/park"

    def test_name_with_slash_stays_one_segment(self):
        seen = []
        client = _client(lambda r: httpx.Response(200, json={}), seen)
        _run(client.load_document("lab 1/2"))
        assert seen[0].url.raw_path == b"/load/lab%201%2F2"

    def test_load_other_owner(self):
        seen = []
        client = _client(lambda r: httpx.Response(200, json={}), seen)
        _run(client.load_document("park", owner="a@b.c"))
        assert seen[0].url.path == "/admin/load/a@b.c/park"

    def test_headers_sent(self):
        seen = []
        client = _client(lambda r: httpx.Response(200, json=[]), seen,
                         headers={"X-User-Email": "a@b.c"})
        _run(client.list_documents())
        assert seen[0].headers["X-User-Email"] == "a@b.c"
        assert seen[0].headers["Accept"] == "application/json"

    def test_delete(self):
        seen = []
        client = _client(lambda r: httpx.Response(200, json={"message": "File deleted"}), seen)
        _run(client.delete_document("park"))
        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/delete/park"

    def test_list_all(self):
        rows = [{"email": "a@b.c", "fileName": "park", "createdAt": "2024-05-01"}]
        client = _client(lambda r: httpx.Response(200, json=rows))
        assert _run(client.list_all_documents()) == rows

    def test_from_settings(self):
        config = Settings(_env_file=None, api_url="http://files.local/", request_timeout=5.0)
        client = FileApiClient.from_settings(config)
        assert client.base_url == "http://files.local"
        assert client.timeout == 5.0


class TestFileListing:
    @pytest.mark.parametrize("payload", [
        ["a", "b"],
        [{"file_name": "a"}, {"fileName": "b"}],
        {"files": ["a", "b"]},
        ["a", 5, {"other": 1}, "b"],
    ])
    def test_normalized(self, payload):
        client = _client(lambda r: httpx.Response(200, json=payload))
        assert _run(client.list_documents()) == ["a", "b"]

    def test_non_json_listing(self):
        client = _client(lambda r: httpx.Response(200, text="ok"))
        assert _run(client.list_documents()) == []


class TestErrors:
    """Status codes map onto the error hierarchy."""

    def test_not_found(self):
        client = _client(lambda r: httpx.Response(404, json={"error": "File not found"}))
        with pytest.raises(DocumentNotFoundError) as exc:
            _run(client.load_document("ghost"))
        assert exc.value.status == 404
        assert exc.value.message == "File not found"

    @pytest.mark.parametrize("status", [401, 403])
    def test_unauthorized(self, status):
        client = _client(lambda r: httpx.Response(status, json={"detail": "Authentication required"}))
        with pytest.raises(UnauthorizedError) as exc:
            _run(client.list_documents())
        assert exc.value.status == status

    def test_server_error(self):
        client = _client(lambda r: httpx.Response(500, json={"message": "disk full"}))
        with pytest.raises(FileApiError) as exc:
            _run(client.save_document("park", {}))
        assert type(exc.value) is FileApiError
        assert exc.value.message == "disk full"

    def test_error_without_body(self):
        client = _client(lambda r: httpx.Response(502))
        with pytest.raises(FileApiError) as exc:
            _run(client.delete_document("park"))
        assert exc.value.message == "Bad Gateway"

    def test_transport_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(refuse)
        with pytest.raises(FileApiError) as exc:
            _run(client.list_documents())
        assert exc.value.status is None

    def test_load_non_json(self):
        client = _client(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(FileApiError):
            _run(client.load_document("park"))
