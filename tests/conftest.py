"""Shared fixtures: a scripted memory service behind httpx.MockTransport."""

from typing import Any, Awaitable, Callable, Dict, List, Union
import json

import httpx
import pytest

from context_planner.domain.context.context_manager import ContextManager
from context_planner.domain.context.memory.cache_memory_store import SessionCacheStore
from context_planner.infrastructure.config import MemoryServiceConfig, Settings
from context_planner.infrastructure.memory_service.client import MemoryServiceClient
from context_planner.infrastructure.scheduling.background_tasks import BackgroundTasks

Handler = Callable[[httpx.Request], Union[httpx.Response, Awaitable[httpx.Response]]]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMemoryService:
    """Routes requests by path and records every call"""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.routes: Dict[str, Handler] = {
            "/hybrid-search": lambda request: httpx.Response(200, json={"results": [], "count": 0}),
            "/recall": lambda request: httpx.Response(200, json={"response": "", "memories_searched": 0, "memories_used": 0}),
            "/ingest": lambda request: httpx.Response(202, json={"queued": True}),
            "/health": lambda request: httpx.Response(200, json={"status": "ok"}),
        }

    def route(self, path: str, handler: Handler) -> None:
        self.routes[path] = handler

    def calls_to(self, path: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["path"] == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append({"path": request.url.path, "body": body})

        result = self.routes[request.url.path](request)
        if hasattr(result, "__await__"):
            result = await result
        return result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_service() -> FakeMemoryService:
    return FakeMemoryService()


@pytest.fixture
def memory_config() -> MemoryServiceConfig:
    return MemoryServiceConfig(enabled=True, recall_timeout_ms=200)


@pytest.fixture
def client(memory_service: FakeMemoryService, memory_config: MemoryServiceConfig) -> MemoryServiceClient:
    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(memory_service),
        base_url=memory_config.base_url,
    )
    return MemoryServiceClient(memory_config, http_client=http_client)


@pytest.fixture
def cache_store() -> SessionCacheStore:
    return SessionCacheStore()


@pytest.fixture
def background() -> BackgroundTasks:
    return BackgroundTasks()


@pytest.fixture
def manager(client, cache_store, background, memory_config) -> ContextManager:
    return ContextManager(
        settings=Settings(memory_service=memory_config),
        client=client,
        cache_store=cache_store,
        background=background,
    )
