"""llm_agent.config

Central configuration.

Keep it simple: defaults, overridden by the persisted settings store, overridden
by environment variables (and finally by command-line flags in `main`).

This module also supports loading a local `.env` file for developer
convenience. `.env` is git-ignored.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from .config_store import default_store_path, load_settings


class ConfigError(RuntimeError):
    pass


def _load_dotenv_best_effort() -> None:
    """Best-effort `.env` loader.

    We avoid adding a hard dependency on `python-dotenv`.

    Supported format: `KEY=VALUE` per line, with optional quotes.
    Lines starting with `#` are ignored.

    Only sets keys that are not already present in `os.environ`.
    """

    try:
        env_path = Path.cwd() / ".env"
        if not env_path.exists() or not env_path.is_file():
            return

        for raw in env_path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            k, v = line.split("=", 1)
            key = k.strip()
            val = v.strip().strip('"').strip("'")
            if not key:
                continue
            os.environ.setdefault(key, val)
    except Exception:
        # Never fail app startup due to dotenv parsing.
        return


# Load `.env` once at import time.
_load_dotenv_best_effort()


@dataclass(frozen=True)
class Provider:
    name: str
    base_url: str
    api_key_env: str
    requires_key: bool


PROVIDERS: dict[str, Provider] = {
    "aipipe": Provider("aipipe", "https://aipipe.org/openai/v1", "AIPIPE_TOKEN", requires_key=False),
    "openai": Provider("openai", "https://api.openai.com/v1", "OPENAI_API_KEY", requires_key=True),
    "openrouter": Provider("openrouter", "https://openrouter.ai/api/v1", "OPENROUTER_API_KEY", requires_key=True),
}

DEFAULT_PROVIDER: str = "aipipe"

# Models offered by the front-end; any other model name is passed through.
SUPPORTED_MODELS: tuple[str, ...] = (
    "gpt-4o-mini",
    "gpt-4o",
    "gpt-4",
    "gpt-3.5-turbo",
)

DEFAULT_MODEL: str = "gpt-4o-mini"

DEFAULT_SEARCH_BASE_URL = "https://www.googleapis.com/customsearch/v1"


@dataclass(frozen=True)
class AgentConfig:
    provider: str = DEFAULT_PROVIDER
    api_key: str = ""
    model: str = DEFAULT_MODEL
    temperature: float = 0.7
    max_tokens: int = 2000

    # remote_workflow tool
    workflow_model: str = DEFAULT_MODEL
    workflow_max_tokens: int = 1500

    # search tool (Google Custom Search JSON API)
    search_api_key: str = ""
    search_engine_id: str = ""
    search_base_url: str = DEFAULT_SEARCH_BASE_URL

    # None keeps outbound calls unbounded; only a user cancel ends them.
    request_timeout_s: Optional[float] = None
    max_rounds: Optional[int] = None

    fake_llm: bool = False
    log_level: str = "INFO"

    @property
    def base_url(self) -> str:
        return endpoint_for(self.provider)

    def redacted(self) -> dict[str, Any]:
        d = {k: getattr(self, k) for k in self.__dataclass_fields__}
        for k in ("api_key", "search_api_key"):
            if d.get(k):
                d[k] = "***"
        return d


def _truthy(raw: Optional[str]) -> bool:
    return str(raw or "").strip() in {"1", "true", "True", "yes", "on"}


def _float_or_none(raw: Optional[str]) -> Optional[float]:
    s = str(raw or "").strip()
    if not s:
        return None
    try:
        v = float(s)
    except ValueError:
        return None
    return v if v > 0 else None


def get_provider(name: str) -> Provider:
    p = PROVIDERS.get(str(name or "").strip().lower())
    if p is None:
        raise ConfigError(f"Unknown provider: {name!r} (expected one of {', '.join(sorted(PROVIDERS))})")
    return p


def endpoint_for(provider: str) -> str:
    return get_provider(provider).base_url


def require_credentials(cfg: AgentConfig) -> None:
    """Raise `ConfigError` before any remote call if a required key is missing."""

    p = get_provider(cfg.provider)
    if p.requires_key and not cfg.api_key:
        raise ConfigError(f"API key required for {p.name} (set {p.api_key_env} or pass --api-key)")


def _from_settings(cfg: AgentConfig, settings: Mapping[str, Any]) -> AgentConfig:
    updates: dict[str, Any] = {}
    provider = settings.get("provider")
    if isinstance(provider, str) and provider.strip():
        updates["provider"] = provider.strip().lower()
    api_key = settings.get("apiKey")
    if isinstance(api_key, str) and api_key:
        updates["api_key"] = api_key
    model = settings.get("model")
    if isinstance(model, str) and model.strip():
        updates["model"] = model.strip()
    return replace(cfg, **updates)


def _from_env(cfg: AgentConfig, env: Mapping[str, str]) -> AgentConfig:
    updates: dict[str, Any] = {}

    provider = env.get("LLM_AGENT_PROVIDER", "").strip().lower()
    if provider:
        updates["provider"] = provider
    model = env.get("LLM_AGENT_MODEL", "").strip()
    if model:
        updates["model"] = model

    if env.get("GOOGLE_SEARCH_API_KEY"):
        updates["search_api_key"] = env["GOOGLE_SEARCH_API_KEY"].strip()
    if env.get("GOOGLE_SEARCH_ENGINE_ID"):
        updates["search_engine_id"] = env["GOOGLE_SEARCH_ENGINE_ID"].strip()
    if env.get("LLM_AGENT_SEARCH_BASE_URL"):
        updates["search_base_url"] = env["LLM_AGENT_SEARCH_BASE_URL"].strip()

    timeout = _float_or_none(env.get("LLM_AGENT_REQUEST_TIMEOUT_S"))
    if timeout is not None:
        updates["request_timeout_s"] = timeout
    if _truthy(env.get("LLM_AGENT_FAKE_LLM")):
        updates["fake_llm"] = True
    level = env.get("LLM_AGENT_LOG_LEVEL", "").strip().upper()
    if level:
        updates["log_level"] = level

    return replace(cfg, **updates)


def load_config(
    *,
    store_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> AgentConfig:
    """Build the effective config: defaults < persisted settings < environment < `overrides`.

    The provider is resolved first. The API key then comes from `overrides`,
    else the provider's key env var, else the stored key, the latter only when
    it was saved for the same provider.
    """

    if env is None:
        env = os.environ
    settings = load_settings(store_path or default_store_path())
    stored = _from_settings(AgentConfig(), settings)

    cfg = _from_env(stored, env)
    extra = {k: v for k, v in (overrides or {}).items() if v is not None and k != "api_key"}
    cfg = replace(cfg, **extra)

    if cfg.provider != stored.provider:
        cfg = replace(cfg, api_key="")
    p = PROVIDERS.get(cfg.provider)
    if p is not None and env.get(p.api_key_env, "").strip():
        cfg = replace(cfg, api_key=env[p.api_key_env].strip())
    key = (overrides or {}).get("api_key")
    if key:
        cfg = replace(cfg, api_key=str(key))
    return cfg


def settings_from_config(cfg: AgentConfig) -> dict[str, str]:
    """The subset that is persisted between sessions."""

    return {"provider": cfg.provider, "apiKey": cfg.api_key, "model": cfg.model}
