"""llm_agent.conversation

Append-only conversation log for a single turn.

The log is seeded with the system prompt and the user's message. Only the turn
loop writes to it; the remote model always receives the complete history via
`snapshot()`.
"""

from __future__ import annotations

import copy
from typing import Iterator

from .protocol import Message, ProtocolError, system_message, user_message, validate_message


class Conversation:
    def __init__(self, *, system_prompt: str, user_input: str) -> None:
        self._messages: list[Message] = []
        # Tool call ids issued by assistant messages that have no result yet.
        self._pending: list[str] = []
        self._answered: set[str] = set()

        self.append(system_message(system_prompt))
        self.append(user_message(user_input))

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())

    def append(self, message: Message) -> None:
        msg = validate_message(message)
        role = msg["role"]

        if not self._messages and role != "system":
            raise ProtocolError("conversation must start with a system message")
        if self._messages and role == "system":
            raise ProtocolError("system message is only allowed first")

        if role == "tool":
            call_id = msg["tool_call_id"]
            if call_id not in self._pending:
                if call_id in self._answered:
                    raise ProtocolError(f"duplicate result for tool call {call_id}")
                raise ProtocolError(f"unknown tool_call_id: {call_id}")
            self._pending.remove(call_id)
            self._answered.add(call_id)
        elif self._pending:
            raise ProtocolError(f"tool calls still awaiting results: {', '.join(self._pending)}")

        if role == "assistant":
            for call in msg.get("tool_calls", []):
                if call["id"] in self._answered:
                    raise ProtocolError(f"tool call id reused: {call['id']}")
                self._pending.append(call["id"])

        self._messages.append(copy.deepcopy(msg))

    def snapshot(self) -> list[Message]:
        return copy.deepcopy(self._messages)

    def pending_tool_call_ids(self) -> list[str]:
        return list(self._pending)

    @property
    def last(self) -> Message:
        return copy.deepcopy(self._messages[-1])
