from __future__ import annotations

import argparse
import json
import sys
import time
from dataclasses import dataclass
from pathlib import Path


def _repo_root() -> Path:
    # scripts/check_models.py -> scripts -> repo root
    return Path(__file__).resolve().parents[1]


@dataclass
class Result:
    provider: str
    model: str
    ok: bool
    elapsed_s: float
    error: str | None = None


def _run_one(*, provider: str, model: str) -> Result:
    from llm_agent.config import ConfigError, load_config, require_credentials  # noqa: WPS433
    from llm_agent.llm import OpenAIChatClient, RemoteError  # noqa: WPS433

    cfg = load_config(overrides={"provider": provider, "model": model})
    try:
        require_credentials(cfg)
    except ConfigError as e:
        raise SystemExit(str(e)) from e

    client = OpenAIChatClient(
        api_key=cfg.api_key,
        base_url=cfg.base_url,
        model=model,
        max_tokens=16,
        timeout_s=cfg.request_timeout_s or 60.0,
    )

    t0 = time.monotonic()
    try:
        _ = client.complete(messages=[{"role": "user", "content": "Reply with exactly: ok"}])
        ok = True
        err = None
    except RemoteError as e:
        ok = False
        err = str(e)
    elapsed = time.monotonic() - t0
    return Result(provider=provider, model=model, ok=ok, elapsed_s=elapsed, error=err)


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser(description="Check which models answer through the configured provider.")
    ap.add_argument("--provider", default=None, help="Provider to check (defaults to the configured one).")
    ap.add_argument("--json", action="store_true", help="Emit JSON lines output.")
    args = ap.parse_args(argv)

    # Ensure repo src/ is on sys.path.
    sys.path.insert(0, str(_repo_root() / "src"))

    from llm_agent.config import SUPPORTED_MODELS, load_config  # noqa: WPS433

    provider = args.provider or load_config().provider

    results: list[Result] = []
    for m in SUPPORTED_MODELS:
        try:
            r = _run_one(provider=provider, model=m)
        except SystemExit as e:
            print(str(e), file=sys.stderr)
            return 2
        results.append(r)
        if not args.json:
            status = "OK" if r.ok else "FAIL"
            print(f"{status:4}  {r.elapsed_s:6.2f}s  {r.provider}/{r.model}")
            if r.error:
                print(f"      error: {r.error}")
        else:
            print(json.dumps(r.__dict__, ensure_ascii=False))

    ok_n = sum(1 for r in results if r.ok)
    if not args.json:
        print(f"\nSummary: {ok_n}/{len(results)} ok.")
    return 0 if ok_n == len(results) else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
