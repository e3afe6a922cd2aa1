"""Tests for WorldsClient over httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from engine.kernel import actions

from enfield_cli.client import WorldsClient

pytestmark = pytest.mark.asyncio(loop_scope="session")


def recording_transport(response: httpx.Response, seen: list):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return response

    return httpx.MockTransport(handler)


class TestHeaders:
    async def test_user_id_header(self):
        seen = []
        transport = recording_transport(httpx.Response(200, json={"data": []}), seen)
        async with WorldsClient("http://t/", user_id="u1", transport=transport) as client:
            await client.fetch_worlds()
        assert seen[0].headers["X-User-Id"] == "u1"
        assert "Authorization" not in seen[0].headers
        assert str(seen[0].url) == "http://t/api/worlds/sync"

    async def test_bearer_token_wins(self):
        seen = []
        transport = recording_transport(httpx.Response(200, json={"data": []}), seen)
        async with WorldsClient("http://t", token="tok", user_id="u1", transport=transport) as client:
            await client.fetch_worlds()
        assert seen[0].headers["Authorization"] == "Bearer tok"
        assert "X-User-Id" not in seen[0].headers

    async def test_set_identity(self):
        seen = []
        transport = recording_transport(httpx.Response(200, json={"data": []}), seen)
        async with WorldsClient("http://t", token="tok", transport=transport) as client:
            client.set_identity(None, "u2")
            await client.fetch_worlds()
        assert seen[0].headers["X-User-Id"] == "u2"
        assert "Authorization" not in seen[0].headers


class TestCalls:
    async def test_fetch_normalizes(self, client, server):
        server.seed({"id": "w1", "name": "Ashgrove", "pages": [{"id": "p1"}]})
        (world,) = await client.fetch_worlds()
        assert world.pages[0].title == "Untitled page"
        assert [c.role for c in world.collaborators] == ["Owner"]

    async def test_push_sends_wire_changes(self, client, server, ada):
        result = actions.create_world([], ada, "Ashgrove")
        worlds = await client.push_changes(result.changes)
        assert [w.name for w in worlds] == ["Ashgrove"]
        sent = json.loads(server.requests[-1].content)
        assert sent["changes"][0]["type"] == "createWorld"
        assert server.requests[-1].method == "PATCH"

    async def test_create_world(self, client, server):
        world = await client.create_world("Brackwater")
        assert world.name == "Brackwater"
        assert json.loads(server.requests[-1].content) == {"name": "Brackwater"}

    async def test_error_status_raises(self, client, server):
        server.fail_next = 1
        with pytest.raises(httpx.HTTPStatusError):
            await client.fetch_worlds()

    async def test_connect_error_raises(self, client, server):
        server.down = True
        with pytest.raises(httpx.ConnectError):
            await client.fetch_worlds()

    async def test_non_json_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        async with WorldsClient("http://t", transport=transport) as client:
            with pytest.raises(httpx.DecodingError):
                await client.fetch_worlds()

    async def test_body_without_data(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"worlds": []}))
        async with WorldsClient("http://t", transport=transport) as client:
            with pytest.raises(httpx.DecodingError):
                await client.fetch_worlds()


class TestPing:
    async def test_up(self, client):
        assert await client.ping() is True

    async def test_down(self, client, server):
        server.down = True
        assert await client.ping() is False

    async def test_unhealthy(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with WorldsClient("http://t", transport=transport) as client:
            assert await client.ping() is False
