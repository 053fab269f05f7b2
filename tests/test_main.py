from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from llm_agent import main as main_mod
from llm_agent.events import MessageAppended, StatusChanged, ToolCallFinished, ToolCallIssued, TurnFinished


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    store = tmp_path / "config.json"
    monkeypatch.setenv("LLM_AGENT_CONFIG", str(store))
    for k in ("LLM_AGENT_PROVIDER", "LLM_AGENT_MODEL", "OPENAI_API_KEY", "OPENROUTER_API_KEY", "LLM_AGENT_FAKE_LLM"):
        monkeypatch.delenv(k, raising=False)
    return store


def test_renderer_formats_events() -> None:
    out = io.StringIO()
    r = main_mod.TerminalRenderer(out)
    r(MessageAppended("user", "hidden"))
    r(MessageAppended("assistant", "Hello"))
    r(ToolCallIssued("c1", "code_eval", {"code": "return 1"}))
    r(ToolCallFinished("c1", "code_eval", {"result": 1}, False))
    r(ToolCallFinished("c2", "search", {"error": "nope"}, True))
    r(StatusChanged("thinking", "Agent is analyzing your request..."))
    r(MessageAppended("error", "Request was cancelled by user."))
    r(TurnFinished("completed"))

    text = out.getvalue()
    assert "hidden" not in text
    assert "[Agent] Hello" in text
    assert '-> code_eval({"code": "return 1"}) [c1]' in text
    assert '<- [ok] code_eval: {"result": 1}' in text
    assert "<- [x] search" in text
    assert "Agent is analyzing your request..." in text
    assert "[Error] Request was cancelled by user." in text


def test_once_in_fake_mode() -> None:
    assert main_mod.main(["--fake", "--once", "hi"]) == 0


def test_missing_key_is_configuration_error() -> None:
    assert main_mod.main(["--provider", "openai", "--once", "hi"]) == 2


def test_save_config_persists_selection(_isolated_env: Path) -> None:
    assert main_mod.main(["--fake", "--provider", "openai", "--api-key", "k", "--model", "gpt-4", "--save-config", "--once", "hi"]) == 0
    saved = json.loads(_isolated_env.read_text(encoding="utf-8"))
    assert saved == {"provider": "openai", "apiKey": "k", "model": "gpt-4"}


def test_repl_stats_and_quit() -> None:
    from llm_agent.agent import AgentLoop
    from llm_agent.config import AgentConfig

    agent = AgentLoop.from_config(AgentConfig(fake_llm=True), on_event=main_mod.TerminalRenderer(io.StringIO()))
    stdin = io.StringIO("hello\n/stats\n/quit\n")
    stdout = io.StringIO()
    main_mod.repl(agent, stdin=stdin, stdout=stdout)
    assert '"total": 0' in stdout.getvalue()


def test_provider_flag_uses_that_providers_key(_isolated_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    from llm_agent.agent import AgentLoop

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    cfg = main_mod.build_config(main_mod._parse_args(["--provider", "openai", "--config-path", str(_isolated_env)]))
    assert cfg.provider == "openai"
    assert cfg.api_key == "sk-test"
    AgentLoop.from_config(cfg)
