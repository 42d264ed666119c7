"""
TabbyAgent: the public surface of tabby-agent.

Usage:
    async with await TabbyAgent.create() as agent:
        agent.on("statusChanged", lambda event: print(event.status))
        await agent.initialize(AgentInitOptions(
            config={"server": {"endpoint": "http://localhost:8080"}},
            client="my-editor 1.0",
        ))
        response = await agent.get_completions(CompletionRequest(
            text="def fib(n):\\n    ",
            position=16,
            language="python",
        ))
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

from tabby_agent._core.api import TabbyApi
from tabby_agent._core.supervisor import (
    DEFAULT_RECONNECT_INTERVAL,
    ApiFactory,
    AuthFactory,
    ConnectionSupervisor,
)
from tabby_agent.auth import Auth
from tabby_agent.cache import CompletionCache
from tabby_agent.cancelable import CancelableTask
from tabby_agent.config import Config, ConfigStore
from tabby_agent.coordinator import PostProcessor, RequestCoordinator
from tabby_agent.events import EventEmitter, Listener
from tabby_agent.logger import LoggerRegistry
from tabby_agent.postprocess import postprocess
from tabby_agent.types import (
    AgentEventName,
    AgentInitOptions,
    AgentStatus,
    CompletionRequest,
    CompletionResponse,
    ConfigUpdatedEvent,
    LogEventRequest,
)
from tabby_agent.usage import AnonymousUsageLogger


class TabbyAgent:
    """
    Client-side coordinator for a Tabby completion server.

    Use TabbyAgent.create() rather than the constructor: creation loads
    persisted state, binds to the default endpoint and starts the
    reconnect loop, all of which need a running event loop.

    Events:
        statusChanged: StatusChangedEvent, on every status transition
        configUpdated: ConfigUpdatedEvent, when update_config changed the config
    """

    def __init__(
        self,
        data_store: Optional[Any] = None,
        loggers: Optional[LoggerRegistry] = None,
        cache: Optional[CompletionCache] = None,
        postprocessor: PostProcessor = postprocess,
        auth_factory: AuthFactory = Auth.create,
        api_factory: ApiFactory = TabbyApi,
        usage_logger: Optional[AnonymousUsageLogger] = None,
        reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL,
    ) -> None:
        self._data_store = data_store
        self._loggers = loggers if loggers is not None else LoggerRegistry()
        self._logger = self._component_logger("TabbyAgent")
        self._events = EventEmitter()
        self._config = ConfigStore()
        self._usage = usage_logger
        self._supervisor = ConnectionSupervisor(
            self._events,
            probe=self._health_check,
            data_store=data_store,
            auth_factory=auth_factory,
            api_factory=api_factory,
            reconnect_interval=reconnect_interval,
            log=self._component_logger("ConnectionSupervisor"),
        )
        self._coordinator = RequestCoordinator(
            self._supervisor,
            self._config,
            cache=cache,
            postprocessor=postprocessor,
            log=self._component_logger("RequestCoordinator"),
        )

    @classmethod
    async def create(cls, **options: Any) -> "TabbyAgent":
        """
        Create a ready-to-initialize agent.

        Keyword arguments are passed to the constructor.
        """
        agent = cls(**options)
        if agent._usage is None:
            agent._usage = await AnonymousUsageLogger.create(data_store=agent._data_store)
        await agent._apply_config()
        agent._supervisor.start()
        return agent

    def _component_logger(self, component: str) -> logging.LoggerAdapter:
        sink = self._loggers.child(component)
        self._loggers.add(sink)
        return sink

    async def _apply_config(self) -> None:
        self._loggers.set_level(self._config.log_level)
        if self._usage is not None:
            self._usage.disabled = self._config.usage_tracking_disabled
        await self._supervisor.rebind(self._config.endpoint)

    async def _health_check(self) -> None:
        await self._coordinator.health_check()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self, options: Optional[AgentInitOptions] = None) -> bool:
        """
        Apply one-time options and probe the server.

        Returns:
            True if the agent has left notInitialized
        """
        options = options or AgentInitOptions()
        if options.client:
            self._loggers.set_bindings({"client": options.client})
        await self.update_config(options.config or {})
        if self._usage is not None:
            await self._usage.event("AgentInitialized", {"client": options.client})
        self._logger.debug(f"Initialized: client={options.client!r}")
        return self.get_status() != AgentStatus.NOT_INITIALIZED

    async def update_config(self, config: Mapping[str, Any]) -> bool:
        """
        Merge a partial config.

        A merge that leaves the config unchanged performs no rebinding and
        emits nothing; the health probe runs either way.

        Raises:
            ConfigError: If the merged config is invalid

        Returns:
            True if the agent has left notInitialized
        """
        if self._config.merge(config):
            await self._apply_config()
            event = ConfigUpdatedEvent(config=self._config.snapshot())
            self._logger.debug(f"Config updated: {event.config}")
            self._events.emit(AgentEventName.CONFIG_UPDATED.value, event)
        await self._coordinator.health_check()
        return self.get_status() != AgentStatus.NOT_INITIALIZED

    async def close(self) -> None:
        """Stop the reconnect loop and release auth. Safe to call multiple times."""
        await self._supervisor.stop()
        self._events.clear()

    async def __aenter__(self) -> "TabbyAgent":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def get_config(self) -> Config:
        return self._config.snapshot()

    def get_status(self) -> AgentStatus:
        return self._supervisor.status

    @property
    def loggers(self) -> LoggerRegistry:
        return self._loggers

    def on(self, event: Union[str, AgentEventName], listener: Listener) -> Callable[[], None]:
        """Subscribe to statusChanged or configUpdated."""
        return self._events.on(AgentEventName(event).value, listener)

    def off(self, event: Union[str, AgentEventName], listener: Listener) -> None:
        self._events.off(AgentEventName(event).value, listener)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def start_auth(self) -> CancelableTask[Optional[str]]:
        """
        Start authentication if the server rejected our credentials.

        Resolves to the URL the user must open, or None when no
        authentication is needed. Cancelling abandons the attempt.
        """
        return CancelableTask(self._start_auth(), on_cancel=self._cancel_auth)

    async def _start_auth(self) -> Optional[str]:
        await self._coordinator.health_check()
        if self.get_status() == AgentStatus.UNAUTHORIZED:
            return await self._supervisor.auth.request_token()
        return None

    def _cancel_auth(self) -> None:
        if self.get_status() == AgentStatus.UNAUTHORIZED:
            self._supervisor.auth.reset()

    def get_completions(self, request: CompletionRequest) -> CancelableTask[CompletionResponse]:
        """See RequestCoordinator.get_completions."""
        return self._coordinator.get_completions(request)

    def post_event(self, request: Union[LogEventRequest, Dict[str, Any]]) -> CancelableTask[bool]:
        """See RequestCoordinator.post_event."""
        return self._coordinator.post_event(request)
