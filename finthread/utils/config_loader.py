from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional
from urllib.parse import urlparse

import yaml

from ..errors import ConfigError
from ..models import Source

REQUIRED_FIELDS = {"name", "url"}
DEFAULT_STORE_PATH = "./.cache/finthread.json"

# Journalist profiles known to the scheduler; their sources may be
# replaced from the environment.
SOURCE_ENV_VARS = {"market": "MARKET_JOURNALISTS", "broad": "BROAD_JOURNALISTS"}


def _validate_source_dict(entry: dict) -> None:
    """Validate a single ``{name, url}`` source mapping.

    Required fields: name (str), url (absolute http/https URL).
    """
    missing = REQUIRED_FIELDS - set(entry)
    if missing:
        raise ConfigError(f"Missing required fields: {sorted(missing)} in {entry}")

    if not str(entry["name"]).strip():
        raise ConfigError(f"Source name must not be empty: {entry}")

    url_str = str(entry["url"]).strip()
    parsed = urlparse(url_str)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"Invalid URL '{url_str}'. Must be absolute http(s) URL.")


def _coerce_sources(entries: object, where: str) -> List[Source]:
    if not isinstance(entries, list):
        raise ConfigError(f"{where} must be a list of {{name, url}} objects")
    sources: List[Source] = []
    for item in entries:
        if not isinstance(item, dict):
            raise ConfigError(f"Each source in {where} must be a mapping, got: {type(item)}")
        _validate_source_dict(item)
        sources.append(Source(name=str(item["name"]).strip(), url=str(item["url"]).strip()))
    return sources


def parse_sources_json(raw: str, *, var_name: str = "sources") -> List[Source]:
    """Parse a JSON array like ``[{"name": "wsj:markets", "url": "https://..."}]``."""
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ConfigError(f"{var_name} is not valid JSON: {exc}") from exc
    return _coerce_sources(data, var_name)


def _string_list(value: object, field_name: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(k, str) for k in value):
        raise ConfigError(f"'{field_name}' must be a list of strings if provided")
    return [k for k in value if k]


@dataclass(slots=True)
class JournalistConfig:
    name: str
    sources: List[Source] = field(default_factory=list)
    filter_keywords: List[str] = field(default_factory=list)
    flag_keywords: List[str] = field(default_factory=list)
    limit: Optional[int] = None
    options: Dict[str, object] = field(default_factory=dict)


def load_journalists_config(path: Path | str, env: Mapping[str, str] | None = None) -> List[JournalistConfig]:
    """Load ``journalists.yaml`` into typed ``JournalistConfig`` instances.

    YAML structure:
      - Top-level mapping
      - Key ``journalists``: list of mappings with fields
          - name: string (required)
          - sources: list of {name, url} (optional when set from env)
          - filter_keywords: list[string] (optional, case-sensitive)
          - flag_keywords: list[string] (optional, case-insensitive)
          - limit: int, max items per provider per run (optional)
          - options: mapping of job switches, e.g. ``compose_text: true`` (optional)

    ``MARKET_JOURNALISTS`` / ``BROAD_JOURNALISTS`` replace the sources of the
    ``market`` / ``broad`` profiles when set. Unknown keys are ignored.
    """
    env = os.environ if env is None else env
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {config_path} must be a mapping")

    raw_items: Iterable[dict] = data.get("journalists") or []
    if not isinstance(raw_items, list):
        raise ConfigError("'journalists' must be a list in the YAML configuration")

    configs: List[JournalistConfig] = []
    for item in raw_items:
        if not isinstance(item, dict) or not str(item.get("name", "")).strip():
            raise ConfigError(f"Each journalist must be a mapping with a name, got: {item!r}")
        name = str(item["name"]).strip()

        env_var = SOURCE_ENV_VARS.get(name)
        if env_var and env.get(env_var):
            sources = parse_sources_json(env[env_var], var_name=env_var)
        else:
            sources = _coerce_sources(item.get("sources") or [], f"journalist '{name}' sources")
        if not sources:
            raise ConfigError(f"Journalist '{name}' has no sources")

        limit = item.get("limit")
        if limit is not None and (not isinstance(limit, int) or limit < 0):
            raise ConfigError(f"'limit' of journalist '{name}' must be a non-negative integer")

        options = item.get("options") or {}
        if not isinstance(options, dict):
            raise ConfigError(f"'options' of journalist '{name}' must be a mapping")

        configs.append(
            JournalistConfig(
                name=name,
                sources=sources,
                filter_keywords=_string_list(item.get("filter_keywords"), "filter_keywords"),
                flag_keywords=_string_list(item.get("flag_keywords"), "flag_keywords"),
                limit=limit,
                options=dict(options),
            )
        )
    return configs


@dataclass(slots=True)
class Settings:
    """Secrets and endpoints read from the environment."""

    telegram_channel_id: str = ""
    telegram_bot_token: str = ""
    processing_backend: str = "ollama"
    store_path: str = DEFAULT_STORE_PATH
    stock_symbols: str = ""
    sentry_dsn: str = ""
    sentry_environment: str = ""

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, *, dry_run: bool = False) -> "Settings":
        env = os.environ if env is None else env
        settings = cls(
            telegram_channel_id=env.get("TELEGRAM_CHANNEL_ID", ""),
            telegram_bot_token=env.get("TELEGRAM_BOT_TOKEN", ""),
            processing_backend=env.get("PROCESSING_BACKEND", "ollama").lower(),
            store_path=env.get("STORE_PATH") or DEFAULT_STORE_PATH,
            stock_symbols=env.get("STOCK_SYMBOLS", ""),
            sentry_dsn=env.get("SENTRY_DSN", ""),
            sentry_environment=env.get("SENTRY_ENVIRONMENT", ""),
        )
        if settings.processing_backend not in {"ollama", "gemini"}:
            raise ConfigError(f"Unsupported PROCESSING_BACKEND '{settings.processing_backend}'")
        if not dry_run:
            missing = [
                var
                for var, value in (
                    ("TELEGRAM_CHANNEL_ID", settings.telegram_channel_id),
                    ("TELEGRAM_BOT_TOKEN", settings.telegram_bot_token),
                )
                if not value
            ]
            if missing:
                raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")
        return settings
