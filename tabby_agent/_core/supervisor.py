"""
Connection supervision for tabby-agent.

Handles:
- The status state machine fed by API call outcomes
- Periodic reconnect probing while disconnected
- Binding of the AuthBridge and API client to the configured endpoint
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from tabby_agent._core.api import TabbyApi
from tabby_agent.auth import UPDATED, Auth, AuthBridge
from tabby_agent.errors import ErrorKind, NotInitializedError
from tabby_agent.events import EventEmitter
from tabby_agent.types import AgentEventName, AgentStatus, StatusChangedEvent

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_INTERVAL = 30.0

AuthFactory = Callable[[str, Optional[Any]], Awaitable[AuthBridge]]
ApiFactory = Callable[[str, Optional[str]], TabbyApi]


class ConnectionSupervisor:
    """
    Owns the agent status, the reconnect loop and the endpoint bindings.

    Status transitions:
        success          -> READY
        canceled         -> (unchanged)
        auth rejected    -> UNAUTHORIZED
        any other error  -> DISCONNECTED

    NOT_INITIALIZED is the initial state and is never re-entered.

    Args:
        events: Emitter receiving statusChanged notifications
        probe: Coroutine function running a health check; must not raise
        data_store: Passed to the auth factory
        auth_factory: Builds an AuthBridge for an endpoint
        api_factory: Builds an API client for (endpoint, token)
        reconnect_interval: Seconds between probes while disconnected
        log: Logger to use instead of the module logger
    """

    def __init__(
        self,
        events: EventEmitter,
        probe: Callable[[], Awaitable[None]],
        data_store: Optional[Any] = None,
        auth_factory: AuthFactory = Auth.create,
        api_factory: ApiFactory = TabbyApi,
        reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL,
        log: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        if reconnect_interval <= 0:
            raise ValueError(f"reconnect_interval must be positive, got {reconnect_interval}")
        self._events = events
        self._probe = probe
        self._data_store = data_store
        self._auth_factory = auth_factory
        self._api_factory = api_factory
        self.reconnect_interval = reconnect_interval
        self._logger = log or logger

        self._status = AgentStatus.NOT_INITIALIZED
        self._auth: Optional[AuthBridge] = None
        self._api: Optional[TabbyApi] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Future] = set()
        self._stopped = False

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @property
    def status(self) -> AgentStatus:
        return self._status

    def report_success(self) -> None:
        self._change_status(AgentStatus.READY)

    def report_failure(self, kind: ErrorKind) -> None:
        if kind is ErrorKind.CANCELED:
            return
        if kind is ErrorKind.AUTH_REJECTED:
            self._change_status(AgentStatus.UNAUTHORIZED)
        else:
            self._change_status(AgentStatus.DISCONNECTED)

    def _change_status(self, status: AgentStatus) -> None:
        if self._status == status:
            return
        self._status = status
        event = StatusChangedEvent(status=status)
        self._logger.debug(f"Status changed: {status.value}")
        self._events.emit(AgentEventName.STATUS_CHANGED.value, event)

    # -------------------------------------------------------------------------
    # Bindings
    # -------------------------------------------------------------------------

    @property
    def auth(self) -> AuthBridge:
        if self._auth is None:
            raise NotInitializedError("Auth is not bound to an endpoint yet")
        return self._auth

    @property
    def api(self) -> TabbyApi:
        if self._api is None:
            raise NotInitializedError("API client is not bound to an endpoint yet")
        return self._api

    @property
    def endpoint(self) -> Optional[str]:
        return self._auth.endpoint if self._auth is not None else None

    @property
    def user(self) -> Optional[str]:
        return self._auth.user if self._auth is not None else None

    async def rebind(self, endpoint: str) -> bool:
        """
        Bind auth and API client to endpoint.

        The AuthBridge is replaced only when endpoint differs from the
        currently bound one; the API client is always rebuilt. The new
        bridge is built before the old one is detached, so the previous
        bindings stay usable while it is created and stay in place if
        creating it fails.

        Returns:
            True if the AuthBridge was replaced
        """
        replaced = False
        if self._auth is None or self._auth.endpoint != endpoint:
            auth = await self._auth_factory(endpoint, self._data_store)
            if self._stopped:
                auth.close()
                return False
            if self._auth is not None:
                self._logger.debug(f"Endpoint changed from {self._auth.endpoint} to {endpoint}")
                self._detach_auth()
            auth.on(UPDATED, self._on_auth_updated)
            self._auth = auth
            replaced = True
        self._rebuild_api()
        return replaced

    def _rebuild_api(self) -> None:
        auth = self.auth
        self._api = self._api_factory(auth.endpoint, auth.token)
        self._logger.debug(f"API client bound to {auth.endpoint}")

    def _detach_auth(self) -> None:
        if self._auth is not None:
            self._auth.off(UPDATED, self._on_auth_updated)
            self._auth.close()
            self._auth = None

    def _on_auth_updated(self, _payload: Any = None) -> None:
        self._logger.debug("Auth updated, rebuilding API client")
        self._rebuild_api()
        self._spawn(self._probe())

    def _spawn(self, coro: Awaitable[Any]) -> None:
        if self._stopped:
            # Stopped: close the coroutine instead of scheduling it
            close = getattr(coro, "close", None)
            if close is not None:
                close()
            return
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # -------------------------------------------------------------------------
    # Reconnect loop
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start the reconnect loop. Calling it again has no effect."""
        if self._reconnect_task is not None or self._stopped:
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def stop(self) -> None:
        """Stop the reconnect loop and background probes. Safe to call multiple times."""
        if self._stopped:
            return
        self._stopped = True

        tasks = list(self._background)
        if self._reconnect_task is not None:
            tasks.append(self._reconnect_task)
            self._reconnect_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._background.clear()
        self._detach_auth()
        self._api = None

    @property
    def is_running(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def _reconnect_loop(self) -> None:
        while True:
            await asyncio.sleep(self.reconnect_interval)
            if self._status == AgentStatus.DISCONNECTED:
                self._logger.debug("Trying to connect...")
                await self._probe()
