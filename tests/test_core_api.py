"""
Tests for tabby_agent._core.api module.

The session factory is patched so no network access happens; the blocking
call still runs in the default executor. TestCancellationOnTheWire uses a
real local HTTP server.
"""

import asyncio
import select
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from tabby_agent._core.api import TabbyApi
from tabby_agent.errors import ApiError, AuthRejectedError, CanceledError, UnknownError
from tabby_agent.types import CompletionResponse, LogEventRequest


def make_response(status_code=200, json_data=None, content=None):
    response = MagicMock()
    response.status_code = status_code
    if json_data is not None:
        response.json.return_value = json_data
        response.content = b"{...}"
    else:
        response.json.side_effect = ValueError("No JSON")
        response.content = content if content is not None else b""
        response.text = (content or b"").decode()
    return response


@pytest.fixture
def session():
    with patch("tabby_agent._core.api.new_session") as new_session:
        instance = MagicMock()
        new_session.return_value = instance
        yield instance


class TestTabbyApi:
    """Tests for request construction."""

    def test_strips_trailing_slash(self):
        assert TabbyApi("http://localhost:8080/").base_url == "http://localhost:8080"

    def test_rejects_invalid_timeout(self):
        with pytest.raises(ValueError):
            TabbyApi("http://localhost:8080", timeout=0)

    @pytest.mark.asyncio
    async def test_health(self, session):
        session.request.return_value = make_response(json_data={"model": "TabbyML/StarCoder-1B"})

        result = await TabbyApi("http://localhost:8080").health()

        assert result == {"model": "TabbyML/StarCoder-1B"}
        args, kwargs = session.request.call_args
        assert args == ("POST", "http://localhost:8080/v1/health")
        assert "Authorization" not in kwargs["headers"]
        assert kwargs["timeout"] == 30.0
        session.close.assert_called()

    @pytest.mark.asyncio
    async def test_bearer_token(self, session):
        session.request.return_value = make_response(json_data={})

        await TabbyApi("http://localhost:8080", token="abc").health()

        headers = session.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer abc"
        assert headers["User-Agent"].startswith("tabby-agent-python/")

    @pytest.mark.asyncio
    async def test_completion_parses_response(self, session):
        session.request.return_value = make_response(json_data={
            "id": "cmpl-1",
            "choices": [{"index": 0, "text": "return n"}],
        })
        payload = {"language": "python", "segments": {"prefix": "def f(n):\n    ", "suffix": ""}}

        response = await TabbyApi("http://localhost:8080").completion(payload)

        assert isinstance(response, CompletionResponse)
        assert response.id == "cmpl-1"
        assert response.choices[0].text == "return n"
        args, kwargs = session.request.call_args
        assert args[1] == "http://localhost:8080/v1/completions"
        assert kwargs["json"] == payload

    @pytest.mark.asyncio
    async def test_event_resolves_true_on_empty_body(self, session):
        session.request.return_value = make_response(status_code=200)
        request = LogEventRequest(type="view", completion_id="cmpl-1", choice_index=0)

        assert await TabbyApi("http://localhost:8080").event(request) is True
        assert session.request.call_args.kwargs["json"] == request.to_dict()


class TestErrorMapping:
    """Tests for HTTP and network error classification."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403, 405])
    async def test_auth_rejected(self, session, status_code):
        session.request.return_value = make_response(status_code=status_code, content=b"denied")

        with pytest.raises(AuthRejectedError) as exc_info:
            await TabbyApi("http://localhost:8080").health()

        assert exc_info.value.status_code == status_code
        assert exc_info.value.body == "denied"
        assert exc_info.value.url == "http://localhost:8080/v1/health"

    @pytest.mark.asyncio
    async def test_server_error(self, session):
        session.request.return_value = make_response(status_code=500, json_data={"error": "oom"})

        with pytest.raises(ApiError) as exc_info:
            await TabbyApi("http://localhost:8080").health()

        assert type(exc_info.value) is ApiError
        assert exc_info.value.body == {"error": "oom"}

    @pytest.mark.asyncio
    async def test_network_error(self, session):
        session.request.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(UnknownError, match="connection refused"):
            await TabbyApi("http://localhost:8080").health()

    @pytest.mark.asyncio
    async def test_malformed_body(self, session):
        session.request.return_value = make_response(status_code=200, content=b"<html>")

        with pytest.raises(UnknownError, match="Malformed"):
            await TabbyApi("http://localhost:8080").health()


class TestCancellation:
    """Tests for aborting an in-flight request."""

    @pytest.mark.asyncio
    async def test_cancel_closes_session(self, session):
        started = threading.Event()
        release = threading.Event()

        def blocking_request(*args, **kwargs):
            started.set()
            release.wait(5)
            return make_response(json_data={})

        session.request.side_effect = blocking_request
        session.close.side_effect = lambda: release.set()

        task = TabbyApi("http://localhost:8080").health()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, started.wait, 5)
        task.cancel()

        with pytest.raises(CanceledError):
            await task
        session.close.assert_called()


@pytest.fixture
def slow_server(monkeypatch):
    """Local server that holds each request for a second unless the client goes away."""
    for name in ("NO_PROXY", "no_proxy"):
        monkeypatch.setenv(name, "127.0.0.1,localhost")
    received = threading.Event()
    client_closed = threading.Event()
    wrote = threading.Event()

    class SlowHandler(BaseHTTPRequestHandler):
        def do_POST(self):
            self.rfile.read(int(self.headers.get("Content-Length") or 0))
            received.set()
            deadline = time.monotonic() + 1
            while time.monotonic() < deadline:
                readable, _, _ = select.select([self.connection], [], [], 0.05)
                if readable and self.connection.recv(1, socket.MSG_PEEK) == b"":
                    client_closed.set()
                    return
            body = b"{}"
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            wrote.set()

        def log_message(self, format, *args):
            pass

    httpd = ThreadingHTTPServer(("127.0.0.1", 0), SlowHandler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield SimpleNamespace(
        url=f"http://127.0.0.1:{httpd.server_address[1]}",
        received=received,
        client_closed=client_closed,
        wrote=wrote,
    )
    httpd.shutdown()
    httpd.server_close()


class TestCancellationOnTheWire:
    """Cancelling must disconnect from the server, not only drop the caller."""

    @pytest.mark.asyncio
    async def test_cancel_disconnects_in_flight_request(self, slow_server):
        loop = asyncio.get_running_loop()
        task = TabbyApi(slow_server.url).health()
        assert await loop.run_in_executor(None, slow_server.received.wait, 5)

        task.cancel()

        with pytest.raises(CanceledError):
            await task
        assert await loop.run_in_executor(None, slow_server.client_closed.wait, 2)
        assert not slow_server.wrote.is_set()

    @pytest.mark.asyncio
    async def test_uncanceled_request_completes(self, slow_server):
        """Sanity check that the same server answers when left alone."""
        api = TabbyApi(slow_server.url, timeout=10)

        assert await api.health() == {}
        assert slow_server.wrote.is_set()
