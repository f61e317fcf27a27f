"""
Configuration for the mind runtime.

- Reads a YAML file (config.yaml by default); a sibling `*.local.yaml`
  takes precedence when present
- Env vars override the reasoning service URL and token and the log level
- Typed accessors below turn sections into plain dicts with defaults
"""

from __future__ import annotations

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"

_MISSING = object()


def local_override_path(path: Union[str, Path]) -> Path:
    """config.yaml -> config.local.yaml, next to the original."""
    path = Path(path)
    return path.with_name(f"{path.stem}.local{path.suffix}")


class ConfigLoader:
    """YAML config with dotted-key lookup and env var overrides."""

    def __init__(self, config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> None:
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {self.config_path}\n"
                f"Copy config.example.yaml to {DEFAULT_CONFIG_PATH} and set reasoning.base_url."
            )
        try:
            data = yaml.safe_load(self.config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {self.config_path}: {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.config_path} must contain a mapping at the top level")
        self._config = data
        logger.debug("Loaded config from %s", self.config_path)

    def _lookup(self, key: str) -> Any:
        node: Any = self._config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return _MISSING
            node = node[part]
        return node

    def get(self, key: str, default: Any = None) -> Any:
        """Dotted lookup, e.g. get("reasoning.timeout")."""
        value = self._lookup(key)
        return default if value is _MISSING else value

    def get_with_env(self, key: str, env_var: str, default: Any = None) -> Any:
        """Env var wins, then the file, then `default`. Empty env vars count as set."""
        if env_var in os.environ:
            return os.environ[env_var]
        value = self._lookup(key)
        if value is _MISSING or value is None:
            return default
        return value

    def get_required(self, key: str, env_var: Optional[str] = None) -> Any:
        value = self.get_with_env(key, env_var) if env_var else self.get(key)
        if value is None or value == "":
            where = f"config key '{key}'" + (f" or env var '{env_var}'" if env_var else "")
            raise ValueError(f"Required configuration value missing: {where}")
        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        value = self.get(section)
        return value if isinstance(value, dict) else {}


_config_instance: Optional[ConfigLoader] = None


def get_config(config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> ConfigLoader:
    """Process-wide loader, created on first use."""
    global _config_instance
    if _config_instance is None:
        local = local_override_path(config_path)
        _config_instance = ConfigLoader(local if local.exists() else config_path)
    return _config_instance


def reload_config() -> None:
    if _config_instance is not None:
        _config_instance._load_config()


def reset_config() -> None:
    """Forget the cached loader so the next get_config() reads from disk."""
    global _config_instance
    _config_instance = None


# ---- Typed accessors ----

def get_reasoning_config(config: Optional[ConfigLoader] = None) -> Dict[str, Any]:
    config = config or get_config()
    return {
        "base_url": config.get_required("reasoning.base_url", "MIND_REASONING_URL"),
        "think_path": config.get("reasoning.think_path", "/api/mind/think"),
        "reflect_path": config.get("reasoning.reflect_path", "/api/mind/reflect"),
        "api_token": config.get_with_env("reasoning.api_token", "MIND_API_TOKEN") or None,
        "timeout": float(config.get("reasoning.timeout", 30)),
        "history_limit": int(config.get("reasoning.history_limit", 40)),
        "reflection": bool(config.get("reasoning.reflection", True)),
    }


def get_scheduler_config(config: Optional[ConfigLoader] = None) -> Dict[str, Any]:
    config = config or get_config()
    return {
        "tick_hz": float(config.get("scheduler.tick_hz", 60)),
        "debug_history": int(config.get("scheduler.debug_history", 0)),
    }


def get_state_config(config: Optional[ConfigLoader] = None) -> Dict[str, Any]:
    config = config or get_config()
    return {
        "damping": float(config.get("state.damping", 0.1)),
        "epsilon": float(config.get("state.epsilon", 0.001)),
        "energy_drain": float(config.get("state.energy_drain", 0.0001)),
        "snapshot_path": config.get("state.snapshot_path", "state/self_state.json"),
    }


def get_default_mode_config(config: Optional[ConfigLoader] = None) -> Dict[str, Any]:
    config = config or get_config()
    return {
        "idle_threshold_ticks": int(config.get("default_mode.idle_threshold_ticks", 300)),
        "base_cooldown_seconds": float(config.get("default_mode.base_cooldown_seconds", 8.0)),
        "min_cooldown_seconds": float(config.get("default_mode.min_cooldown_seconds", 3.0)),
        "max_cooldown_seconds": float(config.get("default_mode.max_cooldown_seconds", 20.0)),
        "freshness_seconds": float(config.get("default_mode.freshness_seconds", 20.0)),
        "seed": config.get("default_mode.seed"),
    }


def get_logging_config(config: Optional[ConfigLoader] = None) -> Dict[str, Any]:
    config = config or get_config()
    return {
        "level": str(config.get_with_env("logging.level", "MIND_LOG_LEVEL", "INFO")).upper(),
    }
