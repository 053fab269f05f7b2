"""llm_agent.events

Events emitted by the turn loop for a presentation layer.

The loop only ever calls into the UI through an `EventCallback`; it never
reads UI state. Events come in two families: message appends tagged by role,
and tool-call lifecycle events (issued -> finished) keyed by tool-call id.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Union


@dataclass(frozen=True)
class MessageAppended:
    # "user" | "assistant" | "error" | "notice"
    role: str
    content: str


@dataclass(frozen=True)
class ToolCallIssued:
    tool_call_id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCallFinished:
    tool_call_id: str
    name: str
    payload: Any
    is_error: bool


@dataclass(frozen=True)
class StatusChanged:
    # "thinking" | "executing_tools" | "paused" | "resumed" | "cancelling"
    state: str
    detail: str = ""


@dataclass(frozen=True)
class TurnFinished:
    # "completed" | "cancelled" | "error"
    status: str
    error: str = ""


AgentEvent = Union[MessageAppended, ToolCallIssued, ToolCallFinished, StatusChanged, TurnFinished]
EventCallback = Callable[[AgentEvent], None]


class RecordingSink:
    """Collects events; thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[AgentEvent] = []

    def __call__(self, event: AgentEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[AgentEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, cls: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, cls)]
