"""Paths, credentials and user preferences for the panel."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .summaries.types import SummarizationSettings

DEFAULT_MODEL = "x-ai/grok-4-fast:free"


class ConfigError(ValueError):
    """Raised when the configuration file cannot be used."""


@dataclass
class PanelConfig:
    data_dir: Path
    model: str = DEFAULT_MODEL
    temperature: float = 0.2
    max_tokens: Optional[int] = None
    settings: SummarizationSettings = field(default_factory=SummarizationSettings)

    @property
    def storage_path(self) -> Path:
        return self.data_dir / "storage.json"

    @property
    def log_path(self) -> Path:
        return self.data_dir / "panel.log"

    @property
    def model_cache_path(self) -> Path:
        return self.data_dir / "_model_catalog.json"


def get_default_data_dir() -> Path:
    env_dir = os.getenv("SMARTSHARE_DATA_DIR")
    if env_dir and env_dir.strip():
        return Path(env_dir.strip()).expanduser()
    return Path("~/.smartshare").expanduser()


def get_default_config_path() -> Path:
    env_path = os.getenv("SMARTSHARE_CONFIG")
    if env_path and env_path.strip():
        return Path(env_path.strip()).expanduser()
    return Path("~/.config/smartshare/config.yaml").expanduser()


def get_openrouter_config_path() -> Path:
    return Path("~/.config/openrouter/key").expanduser()


def load_openrouter_api_key() -> Optional[str]:
    env_key = os.getenv("OPENROUTER_API_KEY")
    if env_key and env_key.strip():
        return env_key.strip()

    config_path = get_openrouter_config_path()
    try:
        contents = config_path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return contents or None


def load_panel_config(
    config_path: Optional[Path] = None,
    data_dir: Optional[Path] = None,
) -> PanelConfig:
    """Build the panel config from the optional YAML file."""
    path = config_path if config_path is not None else get_default_config_path()
    raw = _read_yaml(path)

    config = PanelConfig(data_dir=(data_dir or get_default_data_dir()).expanduser())
    if "model" in raw:
        config.model = str(raw["model"])
    if "temperature" in raw:
        try:
            config.temperature = float(raw["temperature"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{path}: temperature must be a number") from exc
    if raw.get("max_tokens") is not None:
        try:
            config.max_tokens = int(raw["max_tokens"])
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{path}: max_tokens must be an integer") from exc

    summary = raw.get("summary")
    if summary is not None:
        if not isinstance(summary, Mapping):
            raise ConfigError(f"{path}: 'summary' must be a mapping")
        try:
            config.settings = SummarizationSettings.from_mapping(summary)
        except ValueError as exc:
            raise ConfigError(f"{path}: {exc}") from exc
    return config


def _read_yaml(path: Path) -> Mapping[str, Any]:
    try:
        text = Path(path).expanduser().read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path} is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data
