from pathlib import Path

import pytest

from smartshare_panel import config as config_module
from smartshare_panel.config import (
    DEFAULT_MODEL,
    ConfigError,
    get_default_data_dir,
    load_openrouter_api_key,
    load_panel_config,
)
from smartshare_panel.summaries.types import SummaryFormat, SummaryLength, SummaryType


def test_missing_file_gives_defaults(tmp_path):
    config = load_panel_config(tmp_path / "absent.yaml", data_dir=tmp_path / "data")

    assert config.model == DEFAULT_MODEL
    assert config.max_tokens is None
    assert config.settings.type is SummaryType.KEY_POINTS
    assert config.storage_path == tmp_path / "data" / "storage.json"
    assert config.log_path == tmp_path / "data" / "panel.log"


def test_yaml_values_are_applied(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "model: openai/gpt-4o-mini\n"
        "temperature: 0.5\n"
        "max_tokens: 400\n"
        "summary:\n"
        "  type: tl;dr\n"
        "  format: plain-text\n"
        "  length: long\n",
        encoding="utf-8",
    )

    config = load_panel_config(path, data_dir=tmp_path)

    assert config.model == "openai/gpt-4o-mini"
    assert config.temperature == 0.5
    assert config.max_tokens == 400
    assert config.settings.type is SummaryType.TLDR
    assert config.settings.format is SummaryFormat.PLAIN_TEXT
    assert config.settings.length is SummaryLength.LONG


@pytest.mark.parametrize(
    "body",
    [
        "model: [unclosed\n",
        "- just\n- a list\n",
        "temperature: warm\n",
        "summary: headline\n",
        "summary:\n  type: poem\n",
    ],
)
def test_invalid_config_raises(tmp_path, body):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_panel_config(path, data_dir=tmp_path)


def test_data_dir_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("SMARTSHARE_DATA_DIR", str(tmp_path / "share"))
    assert get_default_data_dir() == tmp_path / "share"


def test_api_key_prefers_environment(monkeypatch, tmp_path):
    key_file = tmp_path / "key"
    key_file.write_text("file-key\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "get_openrouter_config_path", lambda: key_file)

    monkeypatch.setenv("OPENROUTER_API_KEY", " env-key ")
    assert load_openrouter_api_key() == "env-key"

    monkeypatch.delenv("OPENROUTER_API_KEY")
    assert load_openrouter_api_key() == "file-key"


def test_api_key_missing(monkeypatch, tmp_path):
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.setattr(config_module, "get_openrouter_config_path", lambda: Path(tmp_path / "nope"))
    assert load_openrouter_api_key() is None
