"""
Connection management for tabby-agent.

This module handles:
- HTTP transport to the Tabby server
- Status supervision, reconnect probing and endpoint binding
- Version constants
"""

from tabby_agent._core.version import (
    AGENT_VERSION,
    API_VERSION,
    get_user_agent,
)
from tabby_agent._core.api import TabbyApi
from tabby_agent._core.supervisor import ConnectionSupervisor

__all__ = [
    # Version
    "AGENT_VERSION",
    "API_VERSION",
    "get_user_agent",
    # Transport
    "TabbyApi",
    # Supervision
    "ConnectionSupervisor",
]
