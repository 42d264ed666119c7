"""
tabby-agent: Client-side coordination for a Tabby code-completion server.

This package provides:
- TabbyAgent, tracking connection and authorization status
- Cancellable completion requests with context windowing and caching
- Partial config updates with change detection
- Device-token authentication and anonymous usage tracking

Installation:
    pip install tabby-agent

Quickstart:
    from tabby_agent import TabbyAgent, AgentInitOptions, CompletionRequest

    agent = await TabbyAgent.create()
    await agent.initialize(AgentInitOptions(
        config={"server": {"endpoint": "http://localhost:8080"}},
    ))

    task = agent.get_completions(CompletionRequest(
        text="def add(a, b):\\n    ",
        position=19,
        language="python",
    ))
    response = await task          # or task.cancel()
    for choice in response.choices:
        print(choice.text)

    await agent.close()
"""

from tabby_agent.types import (
    AgentStatus,
    AgentEventName,
    AgentInitOptions,
    CompletionRequest,
    CompletionResponse,
    Choice,
    LogEventRequest,
    StatusChangedEvent,
    ConfigUpdatedEvent,
)
from tabby_agent.errors import (
    TabbyAgentError,
    CanceledError,
    ApiError,
    AuthRejectedError,
    UnknownError,
    NotInitializedError,
    ConfigError,
    AuthError,
    ErrorKind,
    classify_error,
)
from tabby_agent.cancelable import CancelableTask
from tabby_agent.agent import TabbyAgent
from tabby_agent.auth import Auth, AuthBridge
from tabby_agent.cache import CompletionCache
from tabby_agent.config import default_config
from tabby_agent.data_store import FileDataStore, MemoryDataStore
from tabby_agent.logger import LoggerRegistry
from tabby_agent._core.version import AGENT_VERSION

__version__ = AGENT_VERSION

__all__ = [
    # Version
    "__version__",
    "AGENT_VERSION",
    # Types
    "AgentStatus",
    "AgentEventName",
    "AgentInitOptions",
    "CompletionRequest",
    "CompletionResponse",
    "Choice",
    "LogEventRequest",
    "StatusChangedEvent",
    "ConfigUpdatedEvent",
    # Errors
    "TabbyAgentError",
    "CanceledError",
    "ApiError",
    "AuthRejectedError",
    "UnknownError",
    "NotInitializedError",
    "ConfigError",
    "AuthError",
    "ErrorKind",
    "classify_error",
    # Agent
    "TabbyAgent",
    "CancelableTask",
    "CompletionCache",
    "default_config",
    "LoggerRegistry",
    # Auth and storage
    "Auth",
    "AuthBridge",
    "FileDataStore",
    "MemoryDataStore",
]
