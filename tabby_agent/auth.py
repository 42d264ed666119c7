"""
Authentication for tabby-agent.

AuthBridge is the contract the agent consumes: it owns the bearer token
and user identity for one server endpoint and emits "updated" whenever
either changes. The agent never inspects token contents.

Auth is the default implementation, using the Tabby cloud device-token
flow:
1. request_token() registers a device code for the endpoint and returns
   the URL the user must open to approve it
2. A background task polls until the code is accepted, then stores the
   issued JWT in the data store and emits "updated"

Usage:
    auth = await Auth.create(endpoint="https://tabby.example.com", data_store=store)
    auth.on("updated", lambda _: print("token changed"))
    url = await auth.request_token()
    print(f"Open {url} to sign in")
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol

import requests

from tabby_agent.cancelable import CancelableTask
from tabby_agent.errors import AuthError
from tabby_agent.events import EventEmitter

logger = logging.getLogger(__name__)

CLOUD_API_URL = "https://app.tabbyml.com/api"
AUTH_PAGE_URL = "https://app.tabbyml.com/account/device-token"
POLLING_INTERVAL = 5.0
POLLING_TIMEOUT = 5 * 60.0

UPDATED = "updated"


class AuthBridge(Protocol):
    """Contract between the agent and an authentication provider."""

    @property
    def endpoint(self) -> str: ...

    @property
    def token(self) -> Optional[str]: ...

    @property
    def user(self) -> Optional[str]: ...

    def request_token(self) -> CancelableTask[Optional[str]]: ...

    def reset(self) -> None: ...

    def on(self, event: str, listener: Callable[[Any], Any]) -> Callable[[], None]: ...

    def off(self, event: str, listener: Callable[[Any], Any]) -> None: ...

    def close(self) -> None: ...


def decode_jwt_payload(token: str) -> Dict[str, Any]:
    """
    Decode the payload segment of a JWT without verifying it.

    Raises:
        ValueError: If the token is not a three-part JWS with a JSON payload
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("Invalid JWT format: expected 3 parts")

    payload_b64 = parts[1]
    padding = 4 - len(payload_b64) % 4
    if padding != 4:
        payload_b64 += "=" * padding
    payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    if not isinstance(payload, dict):
        raise ValueError("Invalid JWT payload: expected a JSON object")
    return payload


class Auth:
    """
    Device-token authentication bound to one server endpoint.

    Args:
        endpoint: Server endpoint the token is issued for
        data_store: Store persisting tokens per endpoint (optional)
        cloud_url: Base URL of the cloud auth API
        polling_interval: Seconds between acceptance checks
        polling_timeout: Give up polling after this many seconds
    """

    def __init__(
        self,
        endpoint: str,
        data_store: Optional[Any] = None,
        cloud_url: str = CLOUD_API_URL,
        polling_interval: float = POLLING_INTERVAL,
        polling_timeout: float = POLLING_TIMEOUT,
    ) -> None:
        self._endpoint = endpoint
        self._data_store = data_store
        self._cloud_url = cloud_url.rstrip("/")
        self._polling_interval = polling_interval
        self._polling_timeout = polling_timeout
        self._jwt: Optional[str] = None
        self._payload: Dict[str, Any] = {}
        self._events = EventEmitter()
        self._polling_task: Optional[asyncio.Task] = None

    @classmethod
    async def create(cls, endpoint: str, data_store: Optional[Any] = None, **kwargs: Any) -> "Auth":
        """Create an Auth and load any persisted token for endpoint."""
        auth = cls(endpoint, data_store, **kwargs)
        await auth.load()
        return auth

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def token(self) -> Optional[str]:
        return self._jwt

    @property
    def user(self) -> Optional[str]:
        return self._payload.get("email")

    @property
    def is_polling(self) -> bool:
        return self._polling_task is not None and not self._polling_task.done()

    def on(self, event: str, listener: Callable[[Any], Any]) -> Callable[[], None]:
        return self._events.on(event, listener)

    def off(self, event: str, listener: Callable[[Any], Any]) -> None:
        self._events.off(event, listener)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def load(self) -> None:
        """Load the persisted token for this endpoint, dropping expired ones."""
        if self._data_store is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._data_store.load)
        stored = self._data_store.data.get("auth", {}).get(self._endpoint, {})
        token = stored.get("jwt")
        if not token:
            return
        try:
            payload = decode_jwt_payload(token)
        except ValueError as e:
            logger.warning(f"Discarding unreadable stored token: {e}")
            return
        if payload.get("exp") is not None and payload["exp"] <= time.time():
            logger.info("Stored token expired, discarding")
            return
        self._jwt = token
        self._payload = payload
        logger.debug(f"Loaded token for {self._endpoint}")

    async def _save(self) -> None:
        if self._data_store is None:
            return
        tokens = self._data_store.data.setdefault("auth", {})
        if self._jwt:
            tokens[self._endpoint] = {"jwt": self._jwt}
        else:
            tokens.pop(self._endpoint, None)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._data_store.save)

    # -------------------------------------------------------------------------
    # Token lifecycle
    # -------------------------------------------------------------------------

    def request_token(self) -> CancelableTask[Optional[str]]:
        """
        Start the device-token flow.

        Resolves to the URL the user must open to approve the device.
        Cancelling the returned task abandons the attempt.
        """
        return CancelableTask(self._request_token(), on_cancel=self.reset)

    async def _request_token(self) -> Optional[str]:
        self.reset()
        response = await self._post("/device-token", {"auth_url": self._endpoint})
        try:
            code = response["data"]["code"]
        except (KeyError, TypeError) as e:
            raise AuthError(f"Unexpected device-token response: {response!r}") from e
        self._polling_task = asyncio.create_task(self._poll_token(code))
        logger.info(f"Waiting for device code {code} to be accepted")
        return f"{AUTH_PAGE_URL}?code={code}"

    async def _poll_token(self, code: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._polling_timeout
        while loop.time() < deadline:
            await asyncio.sleep(self._polling_interval)
            try:
                response = await self._post(f"/device-token/accept?code={code}", {})
                token = response["data"]["jwt"]
            except (AuthError, KeyError, TypeError) as e:
                logger.debug(f"Device code {code} not accepted yet: {e}")
                continue
            try:
                await self._set_token(token)
            except ValueError as e:
                logger.error(f"Server issued an unreadable token: {e}")
            return
        logger.warning(f"Device code {code} was not accepted within {self._polling_timeout}s")

    async def _set_token(self, token: Optional[str]) -> None:
        if token:
            self._payload = decode_jwt_payload(token)
        else:
            self._payload = {}
        self._jwt = token
        await self._save()
        logger.debug(f"Token {'updated' if token else 'cleared'} for {self._endpoint}")
        self._events.emit(UPDATED, self)

    async def logout(self) -> None:
        """Revoke the local token and notify listeners."""
        self.reset()
        await self._set_token(None)

    def reset(self) -> None:
        """Abandon any in-flight token request."""
        if self._polling_task is not None:
            self._polling_task.cancel()
            self._polling_task = None

    def close(self) -> None:
        """Stop polling and drop all listeners."""
        self.reset()
        self._events.clear()

    # -------------------------------------------------------------------------
    # Cloud API
    # -------------------------------------------------------------------------

    async def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._post_sync, path, payload)

    def _post_sync(self, path: str, payload: Dict[str, Any]) -> Any:
        url = f"{self._cloud_url}{path}"
        try:
            response = requests.post(url, json=payload, timeout=30)
        except requests.RequestException as e:
            raise AuthError(f"Network error: {e}") from e

        if response.status_code != 200:
            raise AuthError(
                f"Auth request failed with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise AuthError(f"Malformed auth response: {e}") from e
