import dataclasses
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from voice_dispatch.config.schema import (
    AgentConfig,
    AppConfig,
    DispatchConfig,
    LoggingConfig,
    STTConfig,
)
from voice_dispatch.core.errors import ConfigurationError

_SECTION_CLASSES = {
    "agent": AgentConfig,
    "dispatch": DispatchConfig,
    "stt": STTConfig,
    "logging": LoggingConfig,
}

_ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "OLLAMA_HOST": ("agent", "host", str),
    "VOICE_DISPATCH_MODEL": ("agent", "model", str),
    "VOICE_DISPATCH_SYSTEM_PROMPT": ("agent", "system_prompt", str),
    "VOICE_DISPATCH_MAX_TURNS": ("dispatch", "max_turns", int),
}


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Override YAML values with environment variables where mapped."""
    for env_var, (section, key, convert) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        try:
            data[section] = data.get(section) or {}
            data[section][key] = convert(value)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {env_var}: {value!r}") from e


def _build_section(name: str, cls: type, section_data: Any) -> Any:
    if not section_data:
        return cls()
    if not isinstance(section_data, dict):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(section_data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown keys in config section '{name}': {unknown}")
    return cls(**section_data)


def load_config(
    config_path: Path = Path("config.yaml"),
    env_path: Path = Path(".env"),
) -> AppConfig:
    """Load YAML config, merge .env overrides, return frozen AppConfig."""
    load_dotenv(env_path)

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    _apply_env_overrides(data)

    unknown_sections = sorted(set(data) - set(_SECTION_CLASSES))
    if unknown_sections:
        raise ConfigurationError(f"Unknown config sections: {unknown_sections}")

    sections = {
        name: _build_section(name, cls, data.get(name))
        for name, cls in _SECTION_CLASSES.items()
    }
    return AppConfig(**sections)
