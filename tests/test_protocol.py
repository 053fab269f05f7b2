from __future__ import annotations

import json

import pytest

from llm_agent.protocol import (
    ProtocolError,
    ToolCall,
    ToolResult,
    assistant_message,
    parse_tool_call,
    parse_tool_calls,
    validate_message,
)


def _wire(call_id: str, name: str, arguments: str) -> dict:
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


def test_parse_tool_call_decodes_arguments() -> None:
    call = parse_tool_call(_wire("c1", "search", '{"query": "python", "num_results": 3}'))
    assert call.id == "c1"
    assert call.name == "search"
    assert call.arguments == {"query": "python", "num_results": 3}
    assert call.arguments_error == ""


def test_parse_tool_call_keeps_call_with_bad_json() -> None:
    call = parse_tool_call(_wire("c1", "search", "{not json"))
    assert call.arguments == {}
    assert call.arguments_error.startswith("Invalid JSON arguments")
    # Raw text is echoed back so the model sees what it sent.
    assert call.to_wire()["function"]["arguments"] == "{not json"


def test_parse_tool_call_rejects_non_object_arguments() -> None:
    call = parse_tool_call(_wire("c1", "search", "[1, 2]"))
    assert call.arguments_error == "arguments must decode to a JSON object"


@pytest.mark.parametrize(
    "item",
    [
        {"type": "function", "function": {"name": "search", "arguments": "{}"}},
        {"id": "c1", "type": "function"},
        {"id": "c1", "type": "function", "function": {"arguments": "{}"}},
        "nope",
    ],
)
def test_parse_tool_call_structural_errors(item) -> None:
    with pytest.raises(ProtocolError):
        parse_tool_call(item)


def test_parse_tool_calls_rejects_duplicate_ids() -> None:
    with pytest.raises(ProtocolError):
        parse_tool_calls([_wire("c1", "search", "{}"), _wire("c1", "code_eval", "{}")])


def test_parse_tool_calls_accepts_none() -> None:
    assert parse_tool_calls(None) == []


def test_tool_result_message_is_json_payload() -> None:
    res = ToolResult(tool_call_id="c1", payload={"result": 2, "success": True})
    msg = res.to_message()
    assert msg["role"] == "tool"
    assert msg["tool_call_id"] == "c1"
    assert json.loads(msg["content"]) == {"result": 2, "success": True}
    assert not res.is_error
    assert ToolResult(tool_call_id="c1", payload={"error": "boom"}).is_error


def test_validate_message_rules() -> None:
    with pytest.raises(ProtocolError):
        validate_message({"role": "robot", "content": "x"})
    with pytest.raises(ProtocolError):
        validate_message({"role": "tool", "content": "x"})
    with pytest.raises(ProtocolError):
        validate_message({"role": "user", "content": "x", "tool_call_id": "c1"})
    with pytest.raises(ProtocolError):
        validate_message({"role": "user", "content": "x", "tool_calls": [_wire("c1", "search", "{}")]})

    msg = validate_message({"role": "assistant", "content": None})
    assert msg == {"role": "assistant", "content": ""}


def test_assistant_message_carries_wire_tool_calls() -> None:
    call = ToolCall(id="c1", name="code_eval", arguments={"code": "return 1"}, raw_arguments='{"code": "return 1"}')
    msg = assistant_message("", [call])
    assert msg["tool_calls"] == [
        {"id": "c1", "type": "function", "function": {"name": "code_eval", "arguments": '{"code": "return 1"}'}}
    ]
    assert "tool_calls" not in assistant_message("plain")
