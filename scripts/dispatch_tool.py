#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace

from llm_agent.agent import AgentLoop
from llm_agent.config import ConfigError, load_config
from llm_agent.protocol import ProtocolError, parse_tool_call


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser(description="Run one tool call through the dispatcher, without the agent loop.")
    ap.add_argument("tool", help="Tool name (search, remote_workflow, code_eval).")
    ap.add_argument("arguments", nargs="?", default="{}", help="JSON object with the tool arguments.")
    ap.add_argument("--fake", action="store_true", help="Use the offline fake model for remote_workflow.")
    args = ap.parse_args(argv)

    cfg = load_config()
    if args.fake:
        cfg = replace(cfg, fake_llm=True)

    try:
        agent = AgentLoop.from_config(cfg)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    try:
        call = parse_tool_call(
            {"id": "call_cli", "type": "function", "function": {"name": args.tool, "arguments": args.arguments}}
        )
    except ProtocolError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    result = agent.new_dispatcher().execute(call)
    print(json.dumps(result.payload, indent=2, ensure_ascii=False, default=repr))
    return 1 if result.is_error else 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
