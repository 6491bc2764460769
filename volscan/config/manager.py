"""
Settings loader: YAML file + environment overrides, validated with Pydantic.
"""

import hashlib
import json
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from volscan.config.schemas import Settings
from volscan.utils.logger import LoggerMixin

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")

# env var -> (section, key); section None means top level
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "COINGECKO_API_KEY": ("market_data", "api_key"),
    "TELEGRAM_BOT_TOKEN": ("telegram", "bot_token"),
    "TELEGRAM_TOKEN": ("telegram", "bot_token"),
    "TELEGRAM_CHAT_ID": ("telegram", "chat_id"),
    "REDIS_URL": ("storage", "redis_url"),
    "STATE_FILE": ("storage", "state_path"),
    "LOG_LEVEL": (None, "log_level"),
}


class ConfigError(Exception):
    """Raised when settings cannot be read or do not validate"""


def _substitute_env(value: Any, env: Mapping[str, str]) -> Any:
    """Expand ``${VAR}`` / ``${VAR:-default}`` in every string of a YAML tree."""
    if isinstance(value, str):

        def repl(match: re.Match[str]) -> str:
            name, default = match.group(1), match.group(2)
            if name in env:
                return env[name]
            if default is not None:
                return default
            raise ConfigError(f"Environment variable not set: {name}")

        return _ENV_REF.sub(repl, value)
    if isinstance(value, dict):
        return {k: _substitute_env(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_env(v, env) for v in value]
    return value


class SettingsManager(LoggerMixin):
    """
    Builds the immutable Settings value once at startup.

    Precedence, lowest to highest: schema defaults, YAML file, environment.
    """

    def __init__(self, config_path: Path | None = None, env: Mapping[str, str] | None = None) -> None:
        self.config_path = config_path
        self.env = os.environ if env is None else env
        self._version_hash: str | None = None

    @property
    def version_hash(self) -> str | None:
        return self._version_hash

    def load(self) -> Settings:
        """
        Load and validate settings.

        Raises:
            ConfigError: If the file is missing, unparsable, or invalid
        """
        raw = self._read_file()
        raw = _substitute_env(raw, self.env)
        self._apply_env_overrides(raw)

        self._version_hash = hashlib.sha256(
            json.dumps(raw, sort_keys=True, default=str).encode()
        ).hexdigest()[:16]

        try:
            settings = Settings(**raw)
        except ValidationError as e:
            self.logger.error("settings_validation_failed", error=str(e))
            raise ConfigError(f"Invalid settings: {e}") from e

        self.logger.info(
            "settings_loaded",
            path=str(self.config_path) if self.config_path else None,
            version_hash=self._version_hash,
            top_n=settings.ranking.top_n,
            storage=settings.storage.backend.value,
        )
        return settings

    def _read_file(self) -> dict[str, Any]:
        if self.config_path is None:
            return {}
        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error("settings_yaml_invalid", error=str(e))
            raise ConfigError(f"Failed to parse {self.config_path}: {e}") from e

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigError(f"Top level of {self.config_path} must be a mapping")
        return raw

    def _apply_env_overrides(self, raw: dict[str, Any]) -> None:
        for var, (section, key) in ENV_OVERRIDES.items():
            value = self.env.get(var)
            if not value:
                continue
            if section is None:
                raw[key] = value
            else:
                target = raw.setdefault(section, {})
                if not isinstance(target, dict):
                    raise ConfigError(f"Section '{section}' must be a mapping")
                target[key] = value


def load_settings(config_path: Path | str | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Shortcut for ``SettingsManager(path, env).load()``."""
    path = Path(config_path) if config_path is not None else None
    return SettingsManager(path, env).load()
