"""
Version constants for tabby-agent.

- AGENT_VERSION: User-facing package version
- API_VERSION: Tabby server API prefix the transport speaks
"""

from __future__ import annotations

import platform

# tabby-agent version (user-facing semver)
AGENT_VERSION = "0.1.0"

# Server API prefix used by the transport
API_VERSION = "v1"

# Name reported in the User-Agent header and usage events
AGENT_NAME = "tabby-agent-python"


def get_user_agent() -> str:
    """
    Build the User-Agent header value sent with every API request.

    Returns:
        String like "tabby-agent-python/0.1.0 (Linux; Python 3.12.1)"
    """
    return (
        f"{AGENT_NAME}/{AGENT_VERSION} "
        f"({platform.system()}; Python {platform.python_version()})"
    )
