# synnia/config.py
"""
Settings loaded from ~/.synnia/config.yaml.

    hash_algorithm: sha256
    success_display_delay: 2.0
    history_limit: 100
    asset_history_limit: 50
    recipe_dirs: [~/recipes]
    default_model: gpt-4o-mini
    providers:
      openai:
        api_key_env: OPENAI_API_KEY
        base_url: https://api.openai.com/v1

API keys are never stored in the file; each provider names the
environment variable that holds its key.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .hashing import DEFAULT_ALGORITHM
from .services import Credentials

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SYNNIA_CONFIG"
DEFAULT_CONFIG_FILE = Path.home() / ".synnia" / "config.yaml"


def config_path(path: Optional[Path | str] = None) -> Path:
    """Explicit path, else $SYNNIA_CONFIG, else the default file."""
    if path:
        return Path(path).expanduser()
    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return DEFAULT_CONFIG_FILE


def read_config(path: Optional[Path | str] = None) -> Dict[str, Any]:
    """Raw config mapping; missing or unreadable files give {}."""
    path = config_path(path)
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        logger.warning(f"Ignoring config {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring config {path}: not a mapping")
        return {}
    return data


def _coerce(data: Dict[str, Any], key: str, convert, default):
    """``convert(data[key])``, or the default (with a warning) when the value is malformed."""
    if key not in data:
        return default
    try:
        return convert(data[key])
    except (TypeError, ValueError):
        logger.warning(f"Ignoring config {key}={data[key]!r}: expected {convert.__name__}")
        return default


@dataclass
class ProviderSettings:
    api_key_env: Optional[str] = None
    base_url: Optional[str] = None


@dataclass
class Settings:
    """Runtime settings for projects, the engine and the CLI."""
    hash_algorithm: str = DEFAULT_ALGORITHM
    success_display_delay: float = 2.0
    history_limit: int = 100
    asset_history_limit: int = 50
    recipe_dirs: List[Path] = field(default_factory=list)
    providers: Dict[str, ProviderSettings] = field(default_factory=dict)
    default_model: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        defaults = cls()
        providers = {}
        for name, raw in (data.get("providers") or {}).items():
            raw = raw or {}
            providers[name] = ProviderSettings(
                api_key_env=raw.get("api_key_env"),
                base_url=raw.get("base_url"),
            )
        return cls(
            hash_algorithm=data.get("hash_algorithm", defaults.hash_algorithm),
            success_display_delay=_coerce(data, "success_display_delay", float, defaults.success_display_delay),
            history_limit=_coerce(data, "history_limit", int, defaults.history_limit),
            asset_history_limit=_coerce(data, "asset_history_limit", int, defaults.asset_history_limit),
            recipe_dirs=[Path(p).expanduser() for p in data.get("recipe_dirs") or []],
            providers=providers,
            default_model=data.get("default_model"),
        )

    @classmethod
    def load(cls, path: Optional[Path | str] = None) -> "Settings":
        return cls.from_dict(read_config(path))

    def credentials_for(self, provider: str) -> Credentials:
        """Credentials for a provider, reading the key from its environment variable."""
        settings = self.providers.get(provider)
        if settings is None:
            return Credentials()
        api_key = os.environ.get(settings.api_key_env, "") if settings.api_key_env else ""
        return Credentials(api_key=api_key, base_url=settings.base_url)


class SettingsCredentialProvider:
    """CredentialProvider backed by Settings."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def credentials_for(self, provider: str) -> Credentials:
        return self.settings.credentials_for(provider)
