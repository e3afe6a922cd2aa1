"""
Pytest configuration and fixtures for Enfield CLI tests.

The server is faked at the transport level: FakeServer answers the same
routes as the backend and replays changes with the shared reducer.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from engine.kernel.changes import parse_changes
from engine.kernel.normalize import normalize_world, normalize_worlds
from engine.kernel.reducer import apply_changes
from engine.kernel.types import Actor, World

from enfield_cli.cache import LocalCache
from enfield_cli.client import WorldsClient
from enfield_cli.sync import SyncSession

API_URL = "http://enfield.test"
ADA = Actor(id="u1", name="Ada Lovelace", email="ada@example.com")


class MemoryStore:
    """KeyValueStore over a dict."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value


class FakeServer:
    """In-memory stand-in for the worlds API, for httpx.MockTransport."""

    def __init__(self) -> None:
        self.worlds: list[World] = []
        self.requests: list[httpx.Request] = []
        self.patches: list[list[dict]] = []
        self.fail_next = 0
        self.down = False
        # When set, PATCH waits for it (lets tests observe an in-flight flush)
        self.gate: asyncio.Event | None = None

    def seed(self, *worlds: dict) -> None:
        self.worlds = normalize_worlds(list(worlds))

    def _data(self, payload, status_code=200):
        return httpx.Response(status_code, json={"data": payload})

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)

        path, method = request.url.path, request.method
        if path == "/health":
            return httpx.Response(200, json={"status": "ok"})

        if self.fail_next:
            self.fail_next -= 1
            return httpx.Response(500, json={"detail": "Failed to sync worlds."})

        if path == "/api/worlds/sync" and method == "GET":
            return self._data([w.to_dict() for w in self.worlds])

        if path == "/api/worlds/sync" and method == "PATCH":
            if self.gate is not None:
                await self.gate.wait()
            raw = json.loads(request.content).get("changes", [])
            self.patches.append(raw)
            self.worlds = normalize_worlds(apply_changes(self.worlds, parse_changes(raw)))
            return self._data([w.to_dict() for w in self.worlds])

        if path == "/api/worlds" and method == "POST":
            body = json.loads(request.content)
            world = normalize_world({"id": f"world-{len(self.worlds) + 1}", "name": body["name"], "ownerId": "u1"})
            self.worlds.append(world)
            return self._data(world.to_dict(), 201)

        return httpx.Response(404, json={"detail": "Not Found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


async def settle(session: SyncSession) -> None:
    """Wait out the debounce and any flush it started, including follow-ups."""
    for _ in range(10):
        await asyncio.sleep(session.debounce * 2)
        task = session._flush_task
        if task is not None and not task.done():
            await task
        if session._timer is None and (task is None or task.done()):
            return


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cache(store):
    return LocalCache(store)


@pytest_asyncio.fixture(loop_scope="session")
async def client(server):
    """WorldsClient wired to the fake server."""
    async with WorldsClient(API_URL, user_id="u1", transport=server.transport) as c:
        yield c


@pytest_asyncio.fixture(loop_scope="session")
async def session(client, cache):
    """A SyncSession with a short debounce. Timers are cancelled afterwards."""
    s = SyncSession(client, cache, debounce=0.01)
    yield s
    await s.close(flush=False)


@pytest.fixture
def ada():
    return ADA


@pytest.fixture
def wait_settled():
    return settle
