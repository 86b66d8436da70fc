"""Tests for :mod:`hidesync.docsync.client`."""

from __future__ import annotations

import json

import pytest
from aiohttp import ClientError

from hidesync.docsync import (
    ConflictError,
    DocumentationApiClient,
    NetworkError,
    NotFoundError,
    ResourceFilters,
    ServerError,
    ValidationError,
)
from hidesync.utils.logging import reset_warnings


class DummyResp:
    def __init__(self, status=200, data=None, text=None):
        self.status = status
        if text is None:
            text = "" if data is None else json.dumps(data)
        self._text = text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def text(self):
        return self._text


class DummySession:
    """Replay canned responses and record every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def request(self, method, url, *, params=None, json=None, timeout=None):
        self.requests.append({"method": method, "url": url, "params": params, "json": json})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):  # pragma: no cover - sessions passed in are not closed
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_warnings():
    reset_warnings()
    yield
    reset_warnings()


def make_client(*responses, **kwargs):
    session = DummySession(*responses)
    return DocumentationApiClient("https://hidesync.local/", session, **kwargs), session


@pytest.mark.asyncio
async def test_list_sends_filters_and_normalises_page():
    client, session = make_client(
        DummyResp(data={"data": [{"id": "r1"}], "meta": {"page": 1, "pageSize": 5, "totalItems": 1}})
    )

    page = await client.list(ResourceFilters(category="techniques", page_size=5))

    assert page.data == [{"id": "r1"}]
    assert page.meta.total_pages == 1
    request = session.requests[0]
    assert request["method"] == "GET"
    assert request["url"] == "https://hidesync.local/api/v1/documentation/resources"
    assert request["params"] == {"category": "techniques", "page": "1", "pageSize": "5"}


@pytest.mark.asyncio
async def test_crud_endpoints():
    client, session = make_client(
        DummyResp(data={"data": {"id": "r1", "title": "Wrapped"}}),
        DummyResp(201, data={"id": "srv-1", "title": "New"}),
        DummyResp(data={"id": "r1", "title": "Changed"}),
        DummyResp(204),
    )

    assert (await client.get_by_id("r1"))["title"] == "Wrapped"
    assert (await client.create({"title": "New"}))["id"] == "srv-1"
    assert (await client.update("r1", {"title": "Changed"}))["title"] == "Changed"
    assert await client.delete("r1") is None

    assert [(req["method"], req["url"].rsplit("/documentation", 1)[1]) for req in session.requests] == [
        ("GET", "/resources/r1"),
        ("POST", "/resources"),
        ("PUT", "/resources/r1"),
        ("DELETE", "/resources/r1"),
    ]
    assert session.requests[1]["json"] == {"title": "New"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "expected"),
    [(404, NotFoundError), (409, ConflictError), (422, ValidationError), (500, ServerError)],
)
async def test_http_errors_map_to_error_types(status, expected):
    client, _session = make_client(DummyResp(status, data={"message": "rejected"}))

    with pytest.raises(expected) as excinfo:
        await client.get_by_id("r1")

    assert excinfo.value.status == status
    assert excinfo.value.message == "rejected"
    assert client.last_error is excinfo.value


@pytest.mark.asyncio
async def test_plain_text_error_body_is_kept():
    client, _session = make_client(DummyResp(502, text="Bad Gateway"))

    with pytest.raises(ServerError, match="Bad Gateway"):
        await client.delete("r1")


@pytest.mark.asyncio
async def test_invalid_json_on_success_is_server_error():
    client, _session = make_client(DummyResp(200, text="<html>"))

    with pytest.raises(ServerError, match="invalid JSON"):
        await client.get_by_id("r1")


@pytest.mark.asyncio
async def test_transport_failure_raises_network_error(caplog):
    client, _session = make_client(ClientError("connection refused"), ClientError("connection refused"))

    with pytest.raises(NetworkError):
        await client.list()
    with pytest.raises(NetworkError):
        await client.list()

    warnings = [record for record in caplog.records if record.levelname == "WARNING"]
    assert len(warnings) == 1


@pytest.mark.asyncio
async def test_timeout_raises_network_error():
    client, _session = make_client(TimeoutError())

    with pytest.raises(NetworkError):
        await client.create({"title": "x"})


@pytest.mark.asyncio
async def test_search_retries_transient_failures(monkeypatch):
    client, session = make_client(
        ClientError("reset"),
        DummyResp(503, data={"message": "busy"}),
        DummyResp(data={"data": [{"id": "r1"}]}),
    )
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr("hidesync.docsync.client.asyncio.sleep", fake_sleep)

    results = await client.search("stitch")

    assert results == [{"id": "r1"}]
    assert sleeps == [1.0, 2.0]
    assert session.requests[0]["params"] == {"query": "stitch"}


@pytest.mark.asyncio
async def test_search_does_not_retry_client_errors(monkeypatch):
    client, session = make_client(DummyResp(400, data={"detail": "query too short"}))

    async def fake_sleep(delay):  # pragma: no cover - must not be called
        raise AssertionError("unexpected retry")

    monkeypatch.setattr("hidesync.docsync.client.asyncio.sleep", fake_sleep)

    with pytest.raises(ValidationError, match="query too short"):
        await client.search("a")
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_search_gives_up_after_max_retries(monkeypatch):
    client, session = make_client(DummyResp(500), DummyResp(500))

    async def fake_sleep(delay):
        return None

    monkeypatch.setattr("hidesync.docsync.client.asyncio.sleep", fake_sleep)

    with pytest.raises(ServerError):
        await client.search("x", max_retries=1)
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_categories_and_contextual_help():
    client, session = make_client(
        DummyResp(data=[{"id": "techniques"}]),
        DummyResp(data={"items": [{"id": "r1"}]}),
    )

    assert await client.list_categories() == [{"id": "techniques"}]
    assert await client.contextual_help("inventory.add") == [{"id": "r1"}]
    assert session.requests[1]["params"] == {"key": "inventory.add"}
    assert session.requests[1]["url"].endswith("/documentation/contextual-help")


@pytest.mark.asyncio
async def test_ping_reports_health():
    client, session = make_client(DummyResp(200), DummyResp(503), ClientError("down"))

    assert await client.ping() is True
    assert await client.ping() is False
    assert await client.ping() is False
    assert session.requests[0]["url"] == "https://hidesync.local/health"


@pytest.mark.asyncio
async def test_custom_prefix_and_resource_path():
    client, session = make_client(DummyResp(data=[]), api_prefix="", resource_path="docs/")

    await client.list()

    assert session.requests[0]["url"] == "https://hidesync.local/docs/resources"


@pytest.mark.asyncio
async def test_async_close_leaves_injected_session_open():
    client, session = make_client()

    await client.async_close()

    assert session.closed is False
