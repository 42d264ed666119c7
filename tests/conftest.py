"""
Pytest configuration for tabby-agent tests.
"""

import asyncio
from typing import Any, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from tabby_agent.agent import TabbyAgent
from tabby_agent.cancelable import CancelableTask
from tabby_agent.data_store import MemoryDataStore
from tabby_agent.events import EventEmitter
from tabby_agent.logger import LoggerRegistry
from tabby_agent.types import Choice, CompletionResponse

# Note: With pytest-asyncio in auto mode, no event_loop fixture needed


class FakeAuth:
    """In-memory AuthBridge."""

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        self.token: Optional[str] = None
        self.user: Optional[str] = None
        self.auth_url = f"https://auth.example.com/device?endpoint={endpoint}"
        self.reset_count = 0
        self.closed = False
        self._events = EventEmitter()

    def request_token(self) -> CancelableTask[Optional[str]]:
        async def run() -> Optional[str]:
            return self.auth_url
        return CancelableTask(run(), on_cancel=self.reset)

    def reset(self) -> None:
        self.reset_count += 1

    def on(self, event, listener):
        return self._events.on(event, listener)

    def off(self, event, listener) -> None:
        self._events.off(event, listener)

    def close(self) -> None:
        self.closed = True

    def update(self, token: Optional[str], user: Optional[str] = None) -> None:
        """Simulate a token obtained or revoked out of band."""
        self.token = token
        self.user = user
        self._events.emit("updated", self)

    @property
    def listener_count(self) -> int:
        return self._events.listener_count("updated")


class FakeApi:
    """Transport whose behavior is controlled by a FakeServer."""

    def __init__(self, server: "FakeServer", endpoint: str, token: Optional[str]) -> None:
        self.server = server
        self.endpoint = endpoint
        self.token = token

    def _call(self, name: str, payload: Any, result: Any) -> CancelableTask[Any]:
        server = self.server
        server.calls.append((name, payload))

        async def run() -> Any:
            if server.gate is not None:
                await server.gate.wait()
            error = server.errors.get(name)
            if error is not None:
                raise error
            return result

        return CancelableTask(run(), on_cancel=lambda: server.aborted.append(name))

    def health(self) -> CancelableTask[Any]:
        return self._call("health", None, {"model": "TabbyML/StarCoder-1B"})

    def completion(self, request: dict) -> CancelableTask[CompletionResponse]:
        return self._call("completion", request, self.server.completion_response)

    def event(self, request: Any) -> CancelableTask[bool]:
        return self._call("event", request, True)


class FakeServer:
    """Shared state behind every FakeApi/FakeAuth the agent creates."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.aborted: List[str] = []
        self.errors: dict = {}
        self.gate: Optional[asyncio.Event] = None
        self.completion_response = CompletionResponse(
            id="cmpl-1",
            choices=[Choice(index=0, text="return a + b")],
        )
        self.apis: List[FakeApi] = []
        self.auths: List[FakeAuth] = []

    def api_factory(self, endpoint: str, token: Optional[str]) -> FakeApi:
        api = FakeApi(self, endpoint, token)
        self.apis.append(api)
        return api

    async def auth_factory(self, endpoint: str, data_store: Any) -> FakeAuth:
        auth = FakeAuth(endpoint)
        self.auths.append(auth)
        return auth

    def calls_to(self, name: str) -> List[Any]:
        return [payload for call, payload in self.calls if call == name]


@pytest.fixture
def server():
    """Fake Tabby server."""
    return FakeServer()


@pytest.fixture
def usage_logger():
    """Mock AnonymousUsageLogger."""
    usage = MagicMock()
    usage.event = AsyncMock()
    usage.disabled = False
    return usage


@pytest.fixture
async def agent(server, usage_logger):
    """Agent bound to the fake server, not yet initialized."""
    agent = await TabbyAgent.create(
        data_store=MemoryDataStore(),
        loggers=LoggerRegistry(),
        auth_factory=server.auth_factory,
        api_factory=server.api_factory,
        usage_logger=usage_logger,
        reconnect_interval=0.05,
    )
    yield agent
    await agent.close()


@pytest.fixture
async def ready_agent(agent):
    """Agent that completed initialize() against a healthy server."""
    await agent.initialize()
    return agent
