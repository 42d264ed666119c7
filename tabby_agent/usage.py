"""
Anonymous usage tracking.

Posts a small set of lifecycle events (e.g. "AgentInitialized") with an
anonymous id and basic system information. Tracking can be disabled via
the ``anonymous_usage_tracking.disable`` config flag; failures are logged
and never raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import uuid
from typing import Any, Dict, Optional

import requests

from tabby_agent._core.version import AGENT_NAME, AGENT_VERSION

logger = logging.getLogger(__name__)

USAGE_API_URL = "https://app.tabbyml.com/api/usage"

ANONYMOUS_ID_KEY = "anonymousId"


def get_system_data() -> Dict[str, Any]:
    """Properties attached to every usage event."""
    return {
        "agent": f"{AGENT_NAME}, {AGENT_VERSION}",
        "python": platform.python_version(),
        "platform": platform.system().lower(),
        "arch": platform.machine().lower(),
    }


class AnonymousUsageLogger:
    """
    Sends anonymous usage events.

    Attributes:
        disabled: When True, event() does nothing
        anonymous_id: Random id persisted in the data store
    """

    def __init__(
        self,
        data_store: Optional[Any] = None,
        url: str = USAGE_API_URL,
        disabled: bool = False,
    ) -> None:
        self._data_store = data_store
        self._url = url
        self.disabled = disabled
        self.anonymous_id: str = str(uuid.uuid4())

    @classmethod
    async def create(cls, data_store: Optional[Any] = None, **kwargs: Any) -> "AnonymousUsageLogger":
        """Create a logger, reusing the persisted anonymous id when present."""
        usage = cls(data_store, **kwargs)
        await usage._load_anonymous_id()
        return usage

    async def _load_anonymous_id(self) -> None:
        if self._data_store is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._data_store.load)
            stored = self._data_store.data.get(ANONYMOUS_ID_KEY)
            if stored:
                self.anonymous_id = stored
            else:
                self._data_store.data[ANONYMOUS_ID_KEY] = self.anonymous_id
                await loop.run_in_executor(None, self._data_store.save)
        except OSError as e:
            logger.warning(f"Could not persist anonymous id: {e}")

    async def event(self, name: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Post a usage event unless tracking is disabled."""
        if self.disabled:
            return
        payload = {
            "anonymousId": self.anonymous_id,
            "event": name,
            "properties": {**get_system_data(), **(data or {})},
        }
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._post, payload)
        except requests.RequestException as e:
            logger.error(f"Failed to send usage event {name}: {e}")

    def _post(self, payload: Dict[str, Any]) -> None:
        response = requests.post(self._url, json=payload, timeout=10)
        response.raise_for_status()
        logger.debug(f"Sent usage event {payload['event']}")
