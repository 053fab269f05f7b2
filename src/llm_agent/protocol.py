"""Message protocol shared by the turn loop, the dispatcher and the remote client.

This module defines the role-tagged message schema sent to the chat-completion
endpoint and the tool-call / tool-result records exchanged inside a turn.

Design goals:
- Keep schema stable and explicit
- Validate early with clear errors
- Keep it testable (pure functions where possible)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal, Sequence, TypedDict


JsonDict = dict[str, Any]

Role = Literal["system", "user", "assistant", "tool"]

ROLES: tuple[str, ...] = ("system", "user", "assistant", "tool")


class WireFunction(TypedDict):
    name: str
    arguments: str


class WireToolCall(TypedDict):
    id: str
    type: Literal["function"]
    function: WireFunction


class Message(TypedDict, total=False):
    role: Role
    content: str
    tool_calls: list[WireToolCall]
    tool_call_id: str


class ProtocolError(ValueError):
    pass


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the remote model."""

    id: str
    name: str
    arguments: JsonDict = field(default_factory=dict)
    raw_arguments: str = "{}"
    # Set when `raw_arguments` could not be decoded into an object.
    arguments_error: str = ""

    def to_wire(self) -> WireToolCall:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.raw_arguments},
        }


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    payload: Any

    @property
    def is_error(self) -> bool:
        return isinstance(self.payload, dict) and "error" in self.payload

    def to_message(self) -> Message:
        return {
            "role": "tool",
            "content": json.dumps(self.payload, ensure_ascii=False, default=repr),
            "tool_call_id": self.tool_call_id,
        }


def _decode_arguments(raw: Any) -> tuple[JsonDict, str, str]:
    """Return (arguments, raw_json, error)."""

    if raw is None or raw == "":
        return {}, "{}", ""
    if isinstance(raw, dict):
        return dict(raw), json.dumps(raw, ensure_ascii=False), ""
    if not isinstance(raw, str):
        return {}, json.dumps(raw, ensure_ascii=False, default=repr), "arguments must be a JSON object"
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        return {}, raw, f"Invalid JSON arguments: {e}"
    if not isinstance(parsed, dict):
        return {}, raw, "arguments must decode to a JSON object"
    return parsed, raw, ""


def parse_tool_call(item: Any) -> ToolCall:
    """Parse one chat-completions tool call item.

    Accepts the wire shape `{id, type, function: {name, arguments}}`.
    Structural problems (missing id/name) are protocol errors; undecodable
    arguments are kept on the call so the dispatcher can answer with an error.
    """

    if not isinstance(item, dict):
        raise ProtocolError("tool call must be an object")

    call_id = item.get("id")
    if not isinstance(call_id, str) or not call_id:
        raise ProtocolError("tool call missing 'id'")

    fn = item.get("function")
    if not isinstance(fn, dict):
        raise ProtocolError(f"tool call {call_id} missing 'function'")

    name = fn.get("name")
    if not isinstance(name, str) or not name:
        raise ProtocolError(f"tool call {call_id} missing function name")

    args, raw, err = _decode_arguments(fn.get("arguments"))
    return ToolCall(id=call_id, name=name, arguments=args, raw_arguments=raw, arguments_error=err)


def parse_tool_calls(items: Any) -> list[ToolCall]:
    if items is None:
        return []
    if not isinstance(items, Sequence) or isinstance(items, (str, bytes)):
        raise ProtocolError("tool_calls must be a list")

    calls = [parse_tool_call(it) for it in items]
    seen: set[str] = set()
    for c in calls:
        if c.id in seen:
            raise ProtocolError(f"duplicate tool call id: {c.id}")
        seen.add(c.id)
    return calls


def validate_message(msg: Any) -> Message:
    if not isinstance(msg, dict):
        raise ProtocolError("message must be an object")

    role = msg.get("role")
    if role not in ROLES:
        raise ProtocolError(f"invalid role: {role!r}")

    content = msg.get("content", "")
    if content is None:
        content = ""
    if not isinstance(content, str):
        raise ProtocolError("'content' must be a string")

    out: Message = {"role": role, "content": content}

    tool_calls = msg.get("tool_calls")
    if tool_calls:
        if role != "assistant":
            raise ProtocolError("only assistant messages may carry tool_calls")
        out["tool_calls"] = [c.to_wire() for c in parse_tool_calls(tool_calls)]

    tool_call_id = msg.get("tool_call_id")
    if role == "tool":
        if not isinstance(tool_call_id, str) or not tool_call_id:
            raise ProtocolError("tool messages require 'tool_call_id'")
        out["tool_call_id"] = tool_call_id
    elif tool_call_id is not None:
        raise ProtocolError("only tool messages may carry tool_call_id")

    return out


def system_message(content: str) -> Message:
    return {"role": "system", "content": content}


def user_message(content: str) -> Message:
    return {"role": "user", "content": content}


def assistant_message(content: str, tool_calls: Sequence[ToolCall] = ()) -> Message:
    msg: Message = {"role": "assistant", "content": content}
    if tool_calls:
        msg["tool_calls"] = [c.to_wire() for c in tool_calls]
    return msg
