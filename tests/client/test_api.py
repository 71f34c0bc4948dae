"""Tests for the HTTP remote gateway."""

from __future__ import annotations

import json

import httpx
import pytest

from recordsync.client.api import (
    DEFAULT_REMOTE_CATEGORY,
    HTTPGateway,
    RemoteItem,
    derive_category,
)
from recordsync.core.config import GatewayConfig
from recordsync.core.errors import NetworkError, ValidationError
from recordsync.core.types import Record, RecordSource


def make_gateway(handler) -> HTTPGateway:
    """Create a gateway backed by a mock transport."""
    config = GatewayConfig(base_url="https://api.example.com", owner_ref=7)
    return HTTPGateway(config, transport=httpx.MockTransport(handler))


class TestDeriveCategory:
    """Tests for derive_category."""

    def test_explicit_category(self) -> None:
        """An explicit category field wins."""
        assert derive_category({"category": " Hope ", "body": "other"}) == "Hope"

    def test_short_body(self) -> None:
        """A short single-line body is used as category."""
        assert derive_category({"body": "Motivation"}) == "Motivation"

    @pytest.mark.parametrize(
        "body",
        ["line one\nline two", "x" * 41, "", None, 12],
    )
    def test_fallback(self, body: object) -> None:
        """Multi-line, long or missing bodies fall back to the default."""
        assert derive_category({"body": body}) == DEFAULT_REMOTE_CATEGORY


class TestRemoteItem:
    """Tests for RemoteItem."""

    def test_from_dict(self) -> None:
        """Remote items map title to text and derive a category."""
        item = RemoteItem.from_dict({"id": 3, "title": "Hi", "body": "Greeting", "userId": 1})
        record = item.to_record()
        assert record == Record(
            id="3", text="Hi", category="Greeting", source=RecordSource.SERVER
        )

    @pytest.mark.parametrize(
        "data",
        [{"title": "no id"}, {"id": 1, "title": ""}, {"id": 1}, ["not", "a", "dict"]],
    )
    def test_malformed(self, data: object) -> None:
        """Items without id or title are rejected."""
        with pytest.raises(ValidationError):
            RemoteItem.from_dict(data)


class TestFetchAll:
    """Tests for HTTPGateway.fetch_all."""

    @pytest.mark.asyncio
    async def test_fetches_collection(self) -> None:
        """All valid items are returned in order, malformed ones skipped."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json=[
                    {"id": 1, "title": "First", "body": "A"},
                    {"id": 2},
                    {"id": 3, "title": "Third", "body": "multi\nline"},
                ],
            )

        async with make_gateway(handler) as gateway:
            records = await gateway.fetch_all()

        assert requests[0].method == "GET"
        assert str(requests[0].url) == "https://api.example.com/posts"
        assert [(r.id, r.text, r.category) for r in records] == [
            ("1", "First", "A"),
            ("3", "Third", DEFAULT_REMOTE_CATEGORY),
        ]
        assert all(r.source == RecordSource.SERVER for r in records)

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        """Non-2xx responses raise NetworkError with the status code."""
        gateway = make_gateway(lambda request: httpx.Response(500))
        with pytest.raises(NetworkError) as exc_info:
            await gateway.fetch_all()
        assert exc_info.value.status_code == 500
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        """Connection failures raise NetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = make_gateway(handler)
        with pytest.raises(NetworkError, match="failed"):
            await gateway.fetch_all()
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Timeouts raise NetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        gateway = make_gateway(handler)
        with pytest.raises(NetworkError, match="timed out"):
            await gateway.fetch_all()
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        """An undecodable body raises NetworkError."""
        gateway = make_gateway(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(NetworkError, match="Invalid JSON"):
            await gateway.fetch_all()
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_not_a_list(self) -> None:
        """A non-list body raises NetworkError."""
        gateway = make_gateway(lambda request: httpx.Response(200, json={"items": []}))
        with pytest.raises(NetworkError):
            await gateway.fetch_all()
        await gateway.aclose()


class TestPostOne:
    """Tests for HTTPGateway.post_one."""

    @pytest.mark.asyncio
    async def test_posts_record(self) -> None:
        """The record is posted and the remote id adopted."""
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={**bodies[-1], "id": 101})

        local = Record(id="local_1", text="Be kind", category="Life", source=RecordSource.LOCAL)
        async with make_gateway(handler) as gateway:
            stored = await gateway.post_one(local)

        assert bodies == [{"title": "Be kind", "body": "Life", "ownerRef": 7}]
        assert stored.id == "101"
        assert stored.text == "Be kind"
        assert stored.category == "Life"
        assert stored.source == RecordSource.SERVER
        assert stored.last_modified is not None

    @pytest.mark.asyncio
    async def test_missing_remote_id(self) -> None:
        """A response without id is a delivery failure."""
        gateway = make_gateway(lambda request: httpx.Response(201, json={"title": "x"}))
        with pytest.raises(NetworkError, match="id"):
            await gateway.post_one(Record(id="l", text="x", category="y"))
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_rejected(self) -> None:
        """A 4xx response raises NetworkError."""
        gateway = make_gateway(lambda request: httpx.Response(422, json={}))
        with pytest.raises(NetworkError) as exc_info:
            await gateway.post_one(Record(id="l", text="x", category="y"))
        assert exc_info.value.status_code == 422
        await gateway.aclose()
