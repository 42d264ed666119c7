"""
Type definitions for tabby-agent.

Defines enums and dataclasses used across the package for:
- Agent connectivity status
- Completion requests and responses
- Usage events posted back to the server
- Notifications emitted to subscribers
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


# =============================================================================
# Status
# =============================================================================


class AgentStatus(str, Enum):
    """
    Connectivity/authorization state of the agent.

    - NOT_INITIALIZED: Initial state, no API call has completed yet.
      Never re-entered once left.
    - READY: The most recent API call succeeded.
    - DISCONNECTED: The most recent API call failed with a server or
      network error. A background probe runs while in this state.
    - UNAUTHORIZED: The most recent API call was rejected with
      401, 403 or 405.
    """
    NOT_INITIALIZED = "notInitialized"
    READY = "ready"
    DISCONNECTED = "disconnected"
    UNAUTHORIZED = "unauthorized"


class AgentEventName(str, Enum):
    """Names of notifications emitted by the agent."""
    STATUS_CHANGED = "statusChanged"
    CONFIG_UPDATED = "configUpdated"


# =============================================================================
# Completion
# =============================================================================


@dataclass(frozen=True)
class CompletionRequest:
    """
    A request for completions at a cursor position.

    Attributes:
        text: Full document contents
        position: Cursor offset into text (0 <= position <= len(text))
        language: Source language tag (e.g. "python")
    """
    text: str
    position: int
    language: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.position <= len(self.text):
            raise ValueError(
                f"position must be within 0..{len(self.text)}, got {self.position}"
            )


@dataclass(frozen=True)
class Choice:
    """One candidate completion."""
    index: int
    text: str


@dataclass(frozen=True)
class CompletionResponse:
    """
    Completions returned for a request.

    Attributes:
        id: Opaque unique identifier, echoed back in usage events
        choices: Candidate completions in server order (possibly empty).
            Stored as a tuple so a shared response cannot be mutated.
    """
    id: str
    choices: Tuple[Choice, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "choices", tuple(self.choices))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompletionResponse":
        """Build a response from the server's JSON body."""
        choices = tuple(
            Choice(index=item.get("index", i), text=item.get("text", ""))
            for i, item in enumerate(data.get("choices") or [])
        )
        return cls(id=data["id"], choices=choices)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "choices": [{"index": c.index, "text": c.text} for c in self.choices],
        }


@dataclass(frozen=True)
class Segments:
    """Text window around the cursor sent to the server."""
    prefix: str
    suffix: str


# =============================================================================
# Usage events
# =============================================================================


@dataclass(frozen=True)
class LogEventRequest:
    """
    A completion usage event (e.g. a choice was viewed or selected).

    Attributes:
        type: Event type, "view" or "select"
        completion_id: ID of the CompletionResponse the event refers to
        choice_index: Index of the choice within that response
    """
    type: str
    completion_id: str
    choice_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "completion_id": self.completion_id,
            "choice_index": self.choice_index,
        }


# =============================================================================
# Agent options and notifications
# =============================================================================


@dataclass
class AgentInitOptions:
    """
    One-time options passed to TabbyAgent.initialize().

    Attributes:
        config: Partial config merged into the current config
        client: Client identification (e.g. "vscode 1.85.0"); only used
            in log output and the initialization usage event
    """
    config: Optional[Dict[str, Any]] = None
    client: Optional[str] = None


@dataclass(frozen=True)
class StatusChangedEvent:
    """Payload of the statusChanged notification."""
    status: AgentStatus
    event: str = AgentEventName.STATUS_CHANGED.value


@dataclass(frozen=True)
class ConfigUpdatedEvent:
    """Payload of the configUpdated notification."""
    config: Dict[str, Any]
    event: str = AgentEventName.CONFIG_UPDATED.value
