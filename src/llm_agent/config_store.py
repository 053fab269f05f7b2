"""llm_agent.config_store

Persistence for the provider selection across sessions.

The stored record is an opaque key-value JSON object, normally
`{"provider": ..., "apiKey": ..., "model": ...}`. A missing or unreadable file
is treated as "nothing saved yet".
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


JsonDict = dict[str, Any]


def default_store_path() -> Path:
    override = os.environ.get("LLM_AGENT_CONFIG", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return (Path.home() / ".llm_agent" / "config.json").resolve()


def load_settings(path: Path) -> JsonDict:
    p = Path(path)
    try:
        if not p.exists():
            return {}
        d = json.loads(p.read_text(encoding="utf-8"))
        return d if isinstance(d, dict) else {}
    except Exception:
        return {}


def save_settings(path: Path, data: JsonDict) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    tmp.replace(p)


def update_settings(path: Path, **changes: Any) -> JsonDict:
    """Merge `changes` into the stored record and save it."""

    data = load_settings(path)
    for k, v in changes.items():
        if v is None:
            continue
        data[str(k)] = v
    save_settings(path, data)
    return data
