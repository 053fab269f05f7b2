"""llm_agent.main

Terminal front-end.

Run:
    python -m llm_agent.main
    llm-agent --provider openai --model gpt-4o-mini

Each turn runs on a worker thread. Press Ctrl+C while the agent is working to
pause it, then choose to resume or cancel.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO

from .agent import AgentLoop, TurnResult
from .config import PROVIDERS, SUPPORTED_MODELS, AgentConfig, ConfigError, load_config, settings_from_config
from .config_store import default_store_path, update_settings
from .events import (
    AgentEvent,
    MessageAppended,
    StatusChanged,
    ToolCallFinished,
    ToolCallIssued,
    TurnFinished,
)


_LOG = logging.getLogger("llm_agent")


def configure_logging(*, level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Log to stderr, plus `log_file` (append) when given."""

    if getattr(_LOG, "_configured", False):
        return
    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    _LOG.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    _LOG.propagate = False
    _LOG.handlers.clear()

    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    _LOG.addHandler(sh)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), mode="a", encoding="utf-8")
        fh.setFormatter(fmt)
        _LOG.addHandler(fh)
    setattr(_LOG, "_configured", True)


class TerminalRenderer:
    """Render agent events as plain text."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._out = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()

    def _write(self, text: str) -> None:
        with self._lock:
            self._out.write(text + "\n")
            self._out.flush()

    def __call__(self, event: AgentEvent) -> None:
        if isinstance(event, MessageAppended):
            if event.role == "user":
                return
            label = {"assistant": "Agent", "error": "Error"}.get(event.role, event.role.title())
            self._write(f"\n[{label}] {event.content}")
        elif isinstance(event, ToolCallIssued):
            self._write(f"  -> {event.name}({json.dumps(event.arguments, ensure_ascii=False)}) [{event.tool_call_id}]")
        elif isinstance(event, ToolCallFinished):
            mark = "x" if event.is_error else "ok"
            body = json.dumps(event.payload, ensure_ascii=False, default=repr)
            if len(body) > 400:
                body = body[:400] + "..."
            self._write(f"  <- [{mark}] {event.name}: {body}")
        elif isinstance(event, StatusChanged):
            self._write(f"  ... {event.detail or event.state}")
        elif isinstance(event, TurnFinished) and event.status == "completed":
            self._write("")


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="llm-agent", description="Multi-tool LLM agent in the terminal.")
    ap.add_argument("--provider", choices=sorted(PROVIDERS), default=None)
    ap.add_argument("--model", default=None, help=f"Model name (e.g. {', '.join(SUPPORTED_MODELS)})")
    ap.add_argument("--api-key", default=None)
    ap.add_argument("--fake", action="store_true", help="Use the offline fake model (no API calls).")
    ap.add_argument("--save-config", action="store_true", help="Persist provider/model/api key for next time.")
    ap.add_argument("--config-path", type=Path, default=None)
    ap.add_argument("--log-level", default=None)
    ap.add_argument("--log-file", type=Path, default=None)
    ap.add_argument("--once", default=None, metavar="TEXT", help="Run a single turn and exit.")
    return ap.parse_args(argv)


def build_config(args: argparse.Namespace) -> AgentConfig:
    updates: dict[str, Any] = {}
    if args.provider:
        updates["provider"] = args.provider
    if args.model:
        updates["model"] = args.model
    if args.api_key:
        updates["api_key"] = args.api_key
    if args.fake:
        updates["fake_llm"] = True
    if args.log_level:
        updates["log_level"] = str(args.log_level).upper()
    return load_config(store_path=args.config_path, overrides=updates)


def _ask_pause_choice(stdin: TextIO, stdout: TextIO) -> str:
    stdout.write("\nProcessing paused. [r]esume or [c]ancel? ")
    stdout.flush()
    try:
        choice = stdin.readline().strip().lower()
    except KeyboardInterrupt:
        return "c"
    return "c" if choice.startswith("c") else "r"


def run_turn(agent: AgentLoop, text: str, *, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> Optional[TurnResult]:
    """Run one turn on a worker thread; Ctrl+C opens the pause prompt."""

    holder: dict[str, TurnResult] = {}

    def work() -> None:
        try:
            holder["r"] = agent.run(text)
        except Exception:
            _LOG.exception("turn failed")

    t = threading.Thread(target=work, name="llm-agent-turn", daemon=True)
    t.start()
    while t.is_alive():
        try:
            t.join(timeout=0.2)
        except KeyboardInterrupt:
            if not agent.pause():
                continue
            if _ask_pause_choice(stdin, stdout) == "c":
                agent.cancel()
            else:
                agent.resume()
    return holder.get("r")


def repl(agent: AgentLoop, *, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> None:
    stdout.write("Type a message (/stats for tool usage, /quit to exit).\n")
    while True:
        stdout.write("\n> ")
        stdout.flush()
        try:
            line = stdin.readline()
        except KeyboardInterrupt:
            break
        if not line:
            break
        text = line.strip()
        if not text:
            continue
        if text in {"/quit", "/exit"}:
            break
        if text == "/stats":
            stdout.write(json.dumps(agent.tool_stats(), indent=2) + "\n")
            continue
        run_turn(agent, text, stdin=stdin, stdout=stdout)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    cfg = build_config(args)
    configure_logging(level=cfg.log_level, log_file=args.log_file)
    _LOG.debug("config: %s", cfg.redacted())

    if args.save_config:
        update_settings(args.config_path or default_store_path(), **settings_from_config(cfg))

    try:
        agent = AgentLoop.from_config(cfg, on_event=TerminalRenderer())
    except ConfigError as e:
        sys.stderr.write(f"Configuration error: {e}\n")
        return 2

    if args.once:
        res = run_turn(agent, args.once)
        return 0 if res is not None and res.status == "completed" else 1

    repl(agent)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
