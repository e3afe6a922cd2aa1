"""HTTP client for the Enfield worlds API."""

from __future__ import annotations

from typing import Any

import httpx

from engine.kernel.changes import WorldChange, dump_changes
from engine.kernel.normalize import normalize_world, normalize_worlds
from engine.kernel.types import World


class WorldsClient:
    """
    Async client for /api/worlds.

    Every call raises httpx.HTTPError on transport failure, non-2xx status
    or an unusable body, except ping() which reports reachability as a bool.
    """

    def __init__(
        self,
        api_url: str,
        token: str | None = None,
        user_id: str | None = None,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.user_id = user_id
        self.client = httpx.AsyncClient(
            base_url=self.api_url,
            headers=self._headers(),
            timeout=timeout,
            transport=transport,
        )

    def _headers(self) -> dict:
        """Build request headers. Bearer token when configured, else X-User-Id."""
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        elif self.user_id:
            headers["X-User-Id"] = self.user_id
        return headers

    def set_identity(self, token: str | None, user_id: str | None) -> None:
        """Switch the identity sent with subsequent requests."""
        self.token = token
        self.user_id = user_id
        self.client.headers.pop("Authorization", None)
        self.client.headers.pop("X-User-Id", None)
        self.client.headers.update(self._headers())

    @staticmethod
    def _data(res: httpx.Response) -> Any:
        res.raise_for_status()
        try:
            body = res.json()
        except ValueError as e:
            raise httpx.DecodingError("Response body is not JSON", request=res.request) from e
        if not isinstance(body, dict) or "data" not in body:
            raise httpx.DecodingError("Response body has no 'data'", request=res.request)
        return body["data"]

    @classmethod
    def _worlds(cls, res: httpx.Response) -> list[World]:
        data = cls._data(res)
        try:
            return normalize_worlds(data)
        except (TypeError, ValueError, AttributeError) as e:
            raise httpx.DecodingError(f"Unusable world list: {e}", request=res.request) from e

    async def fetch_worlds(self) -> list[World]:
        """GET /api/worlds/sync → canonical world list."""
        res = await self.client.get("/api/worlds/sync")
        return self._worlds(res)

    async def push_changes(self, changes: list[WorldChange]) -> list[World]:
        """PATCH /api/worlds/sync with the whole batch → canonical world list."""
        res = await self.client.patch("/api/worlds/sync", json={"changes": dump_changes(changes)})
        return self._worlds(res)

    async def create_world(self, name: str, description: str | None = None) -> World:
        """POST /api/worlds → the stored world."""
        payload: dict[str, Any] = {"name": name}
        if description is not None:
            payload["description"] = description
        res = await self.client.post("/api/worlds", json=payload)
        return normalize_world(self._data(res))

    async def ping(self) -> bool:
        """True when /health answers 200."""
        try:
            res = await self.client.get("/health", timeout=5.0)
        except httpx.HTTPError:
            return False
        return res.status_code == 200

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> WorldsClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
