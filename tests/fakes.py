"""Test doubles: a virtual clock and a scripted Graph API."""

import asyncio
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

from pulse_core.graph import GraphApiClient

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
GRAPH_BASE = "https://graph.test/v18.0"


class FakeClock:
    """Virtual time. ``sleep`` advances instantly and records the requested delay."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self.start = start
        self.offset = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.offset)

    def monotonic(self) -> float:
        return self.offset

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds > 0:
            self.offset += seconds
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self.offset += seconds


class FakeGraph:
    """Routes requests by path (plus query string for ``paging.next`` URLs).

    Each route holds a list of ``(status, body)`` responses served in order;
    the last one repeats once the list is exhausted.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list[tuple[int, dict]]] = {}
        self.calls: list[tuple[str, str, dict]] = []

    def add(self, key: str, body: dict, status: int = 200) -> None:
        self.routes.setdefault(key, []).append((status, body))

    def next_url(self, key: str) -> str:
        return f"{GRAPH_BASE}{key}"

    def paths(self) -> list[str]:
        return [key for _, key, _ in self.calls]

    def respond(self, method: str, url: str, params: dict | None) -> tuple[int, dict]:
        parts = urlsplit(url)
        key = parts.path.removeprefix("/v18.0")
        if parts.query:
            key = f"{key}?{parts.query}"
        self.calls.append((method, key, dict(params or {})))

        responses = self.routes.get(key)
        if not responses:
            return 404, {"error": {"message": f"Unknown path components: {key}", "code": 803}}
        return responses.pop(0) if len(responses) > 1 else responses[0]


class FakeGraphClient(GraphApiClient):
    """Real retry/limiter/pagination logic over the scripted transport."""

    def __init__(self, graph: FakeGraph, access_token: str, **kwargs) -> None:
        kwargs.setdefault("base_url", GRAPH_BASE)
        super().__init__(access_token, **kwargs)
        self.graph = graph

    async def _send(self, method, url, params):
        return self.graph.respond(method, url, params)


def oauth_error(message: str = "Invalid OAuth access token.") -> dict:
    return {"error": {"message": message, "type": "OAuthException", "code": 190}}
