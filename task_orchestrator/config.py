"""
Configuration
=============

User configuration lives in ``config.json`` inside the config directory
(``~/.task_orchestrator`` unless ``TASK_ORCHESTRATOR_HOME`` is set).
Every key is optional; invalid values fall back to the defaults below.

Example::

    {
      "defaults": {"timeoutMs": 120000, "toolTimeoutFraction": 0.25},
      "providers": {
        "groq": {"priority": {"creative": 1}, "maxTokens": 1500},
        "deepseek": {"enabled": false}
      },
      "tools": {"search": {"maxResults": 8}},
      "logging": {"level": "DEBUG", "file": "~/task_orchestrator.log"}
    }
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import DEFAULT_TIMEOUT_MS, ProviderParams, TaskCategory

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TASK_ORCHESTRATOR_HOME"
DEFAULT_TOOL_TIMEOUT_FRACTION = 1 / 3
DEFAULT_TOOL_TIMEOUT_FLOOR_MS = 1000


def get_config_dir() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".task_orchestrator"


def load_user_config(config_path: Path | None = None) -> dict[str, Any]:
    """Read ``config.json``; a missing or unreadable file yields an empty config."""
    config_path = config_path or get_config_dir() / "config.json"
    if not config_path.exists():
        return {}

    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            loaded = json.load(config_file)
    except Exception as exc:
        # Logging is not configured yet at this point
        print(f"Warning: Failed to load config from {config_path}: {exc}")
        return {}

    if not isinstance(loaded, dict):
        print(f"Warning: Config file {config_path} did not contain an object.")
        return {}

    return loaded


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key, {})
    if isinstance(value, dict):
        return value
    return {}


def _resolve_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    return default


def _resolve_number(value: Any, default: float, *, minimum: float = 0.0) -> float:
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if value <= minimum:
        return default
    return float(value)


@dataclass(frozen=True)
class ProviderConfig:
    """Per-provider overrides"""

    enabled: bool = True
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    priority: dict[TaskCategory, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ProviderConfig:
        priority: dict[TaskCategory, int] = {}
        raw_priority = raw.get("priority", {})
        if isinstance(raw_priority, dict):
            for key, rank in raw_priority.items():
                try:
                    category = TaskCategory(str(key).lower())
                except ValueError:
                    logger.warning(f"Ignoring priority for unknown category '{key}'")
                    continue
                if isinstance(rank, int) and not isinstance(rank, bool):
                    priority[category] = rank

        model = raw.get("model")
        temperature = raw.get("temperature")
        max_tokens = raw.get("maxTokens")
        return cls(
            enabled=_resolve_bool(raw.get("enabled"), True),
            model=model if isinstance(model, str) and model else None,
            temperature=(
                float(temperature)
                if isinstance(temperature, (int, float)) and not isinstance(temperature, bool)
                else None
            ),
            max_tokens=(
                max_tokens
                if isinstance(max_tokens, int) and not isinstance(max_tokens, bool) and max_tokens > 0
                else None
            ),
            priority=priority,
        )

    def params(self, base: ProviderParams) -> ProviderParams:
        return ProviderParams(
            temperature=self.temperature if self.temperature is not None else base.temperature,
            max_tokens=self.max_tokens if self.max_tokens is not None else base.max_tokens,
        )


@dataclass(frozen=True)
class OrchestratorSettings:
    """Typed view over the user configuration"""

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    tool_timeout_fraction: float = DEFAULT_TOOL_TIMEOUT_FRACTION
    tool_timeout_floor: float = DEFAULT_TOOL_TIMEOUT_FLOOR_MS / 1000.0
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    tools: dict[str, dict[str, Any]] = field(default_factory=dict)
    log_level: str | None = None
    log_file: str | None = None

    @classmethod
    def from_config(cls, raw: dict[str, Any]) -> OrchestratorSettings:
        defaults = _section(raw, "defaults")

        fraction = _resolve_number(
            defaults.get("toolTimeoutFraction"), DEFAULT_TOOL_TIMEOUT_FRACTION
        )
        if fraction > 1:
            fraction = DEFAULT_TOOL_TIMEOUT_FRACTION

        providers = {
            name.lower(): ProviderConfig.from_dict(value)
            for name, value in _section(raw, "providers").items()
            if isinstance(value, dict)
        }
        tools = {
            name.lower(): value
            for name, value in _section(raw, "tools").items()
            if isinstance(value, dict)
        }

        log_config = _section(raw, "logging")
        level = log_config.get("level")
        log_file = log_config.get("file")

        return cls(
            timeout_ms=int(_resolve_number(defaults.get("timeoutMs"), DEFAULT_TIMEOUT_MS)),
            tool_timeout_fraction=fraction,
            tool_timeout_floor=_resolve_number(
                defaults.get("toolTimeoutFloorMs"), DEFAULT_TOOL_TIMEOUT_FLOOR_MS
            )
            / 1000.0,
            providers=providers,
            tools=tools,
            log_level=level.upper() if isinstance(level, str) else None,
            log_file=log_file if isinstance(log_file, str) and log_file else None,
        )

    @classmethod
    def load(cls, config_path: Path | None = None) -> OrchestratorSettings:
        return cls.from_config(load_user_config(config_path))

    def provider_config(self, provider_name: str) -> ProviderConfig:
        return self.providers.get(provider_name.lower(), ProviderConfig())

    def tool_config(self, tool_id: str) -> dict[str, Any]:
        return self.tools.get(tool_id.lower(), {})

    def tool_enabled(self, tool_id: str) -> bool:
        return _resolve_bool(self.tool_config(tool_id).get("enabled"), True)


def configure_logging(settings: OrchestratorSettings, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO

    if not verbose and settings.log_level:
        level = getattr(logging, settings.log_level, logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if settings.log_file:
        try:
            expanded_path = os.path.expanduser(settings.log_file)
            handlers.append(logging.FileHandler(expanded_path, encoding="utf-8"))
        except Exception as e:
            # Console logging still works without the file
            print(f"Failed to setup log file {settings.log_file}: {e}")

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )
