from __future__ import annotations

import pytest

from llm_agent.conversation import Conversation
from llm_agent.protocol import ProtocolError, ToolCall, ToolResult, assistant_message


def _call(call_id: str) -> ToolCall:
    return ToolCall(id=call_id, name="code_eval", arguments={"code": "return 1"}, raw_arguments='{"code": "return 1"}')


def test_conversation_is_seeded_with_system_and_user() -> None:
    conv = Conversation(system_prompt="sys", user_input="hello")
    snap = conv.snapshot()
    assert [m["role"] for m in snap] == ["system", "user"]
    assert snap[1]["content"] == "hello"
    assert len(conv) == 2


def test_snapshot_is_a_copy() -> None:
    conv = Conversation(system_prompt="sys", user_input="hello")
    snap = conv.snapshot()
    snap[1]["content"] = "mutated"
    snap.append({"role": "user", "content": "x"})
    assert conv.snapshot()[1]["content"] == "hello"
    assert len(conv) == 2


def test_tool_results_must_reference_issued_calls() -> None:
    conv = Conversation(system_prompt="sys", user_input="hi")
    with pytest.raises(ProtocolError):
        conv.append(ToolResult(tool_call_id="ghost", payload={}).to_message())

    conv.append(assistant_message("", [_call("c1"), _call("c2")]))
    assert conv.pending_tool_call_ids() == ["c1", "c2"]

    conv.append(ToolResult(tool_call_id="c2", payload={"ok": 1}).to_message())
    with pytest.raises(ProtocolError):
        conv.append(ToolResult(tool_call_id="c2", payload={"ok": 1}).to_message())

    conv.append(ToolResult(tool_call_id="c1", payload={"ok": 1}).to_message())
    assert conv.pending_tool_call_ids() == []
    assert [m["role"] for m in conv] == ["system", "user", "assistant", "tool", "tool"]


def test_next_message_requires_all_results() -> None:
    conv = Conversation(system_prompt="sys", user_input="hi")
    conv.append(assistant_message("", [_call("c1")]))
    with pytest.raises(ProtocolError):
        conv.append(assistant_message("done"))


def test_second_system_message_rejected() -> None:
    conv = Conversation(system_prompt="sys", user_input="hi")
    with pytest.raises(ProtocolError):
        conv.append({"role": "system", "content": "again"})


def test_reused_tool_call_id_rejected() -> None:
    conv = Conversation(system_prompt="sys", user_input="hi")
    conv.append(assistant_message("", [_call("c1")]))
    conv.append(ToolResult(tool_call_id="c1", payload={}).to_message())
    with pytest.raises(ProtocolError):
        conv.append(assistant_message("", [_call("c1")]))
