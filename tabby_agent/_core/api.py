"""
HTTP transport for the Tabby server API.

Every call returns a CancelableTask. The blocking request runs in the
default executor on its own abortable requests.Session (see session.py);
cancelling the task closes that session, which shuts down the socket of the
in-flight request so the server sees the client go away.

Usage:
    api = TabbyApi("http://localhost:8080", token=None)
    await api.health()
    response = await api.completion({
        "language": "python",
        "segments": {"prefix": "def fib(n):\\n    ", "suffix": ""},
    })
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import requests

from tabby_agent._core.session import new_session
from tabby_agent._core.version import API_VERSION, get_user_agent
from tabby_agent.cancelable import CancelableTask
from tabby_agent.errors import (
    AUTH_REJECTED_STATUS_CODES,
    ApiError,
    AuthRejectedError,
    UnknownError,
)
from tabby_agent.types import CompletionResponse, LogEventRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 30.0


def _read_body(response: requests.Response) -> Any:
    """Best-effort decode of an error response body."""
    try:
        return response.json()
    except ValueError:
        return response.text


class TabbyApi:
    """
    Client for the server's /v1 endpoints.

    Attributes:
        base_url: Server endpoint, without trailing slash
        token: Bearer token sent with every request, if any
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def health(self) -> CancelableTask[Any]:
        """POST /v1/health. Resolves to the server's health state."""
        return self._request("POST", "/health")

    def completion(self, request: Dict[str, Any]) -> CancelableTask[CompletionResponse]:
        """
        POST /v1/completions.

        Args:
            request: {"language", "segments": {"prefix", "suffix"}, "user"?}
        """
        return self._request("POST", "/completions", request, CompletionResponse.from_dict)

    def event(self, request: Union[LogEventRequest, Dict[str, Any]]) -> CancelableTask[bool]:
        """POST /v1/events. Resolves to True once the server accepted the event."""
        payload = request.to_dict() if isinstance(request, LogEventRequest) else request
        return self._request("POST", "/events", payload, lambda _: True)

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": get_user_agent(),
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        parse: Optional[Callable[[Any], T]] = None,
    ) -> CancelableTask[T]:
        url = f"{self.base_url}/{API_VERSION}{path}"
        session = new_session()
        loop = asyncio.get_running_loop()
        pending = loop.run_in_executor(None, self._send, session, method, url, payload)

        async def run() -> T:
            try:
                body = await pending
            finally:
                session.close()
            return parse(body) if parse is not None else body

        def abort() -> None:
            logger.debug(f"Aborting {method} {url}")
            session.close()

        return CancelableTask(run(), on_cancel=abort)

    def _send(
        self,
        session: requests.Session,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]],
    ) -> Any:
        """Blocking request; raises the classified error on failure."""
        try:
            response = session.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UnknownError(f"Network error: {e}") from e

        if response.status_code >= 400:
            error_cls = (
                AuthRejectedError
                if response.status_code in AUTH_REJECTED_STATUS_CODES
                else ApiError
            )
            raise error_cls(
                response.status_code,
                f"{method} {url} failed with status {response.status_code}",
                body=_read_body(response),
                url=url,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UnknownError(f"Malformed response from {url}: {e}") from e
