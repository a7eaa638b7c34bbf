"""Tests for restep.config (RestepConfig.load, env overrides)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from restep.config import EngineSettings, LLMConfig, RestepConfig
from restep.errors import ConfigError, ErrorCodes

_ENV_VARS = ("RESTEP_MODEL", "RESTEP_TEMPERATURE", "RESTEP_MAX_TOKENS", "RESTEP_MAX_ROUNDS")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestModels:
    def test_defaults(self) -> None:
        config = RestepConfig()
        assert config.engine.max_rounds == 100
        assert config.engine.stream_attempts == 2
        assert config.llm.temperature is None

    def test_sampling_options_skip_unset(self) -> None:
        assert LLMConfig().sampling_options() == {}
        llm = LLMConfig(temperature=0.3, max_tokens=256)
        assert llm.sampling_options() == {"temperature": 0.3, "max_tokens": 256}

    def test_max_rounds_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            EngineSettings(max_rounds=0)


# ---------------------------------------------------------------------------
# RestepConfig.load
# ---------------------------------------------------------------------------


class TestLoad:
    def test_no_file_gives_defaults(self) -> None:
        assert RestepConfig.load() == RestepConfig()

    def test_file_values(self, tmp_path: Path) -> None:
        path = tmp_path / "restep.json"
        path.write_text(
            json.dumps({"llm": {"model": "openai/gpt-4o"}, "engine": {"max_rounds": 7}})
        )
        config = RestepConfig.load(str(path))
        assert config.llm.model == "openai/gpt-4o"
        assert config.engine.max_rounds == 7

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "restep.json"
        path.write_text(json.dumps({"llm": {"model": "openai/gpt-4o"}}))
        monkeypatch.setenv("RESTEP_MODEL", "anthropic/claude-sonnet-4-5-20250929")
        monkeypatch.setenv("RESTEP_TEMPERATURE", "0.5")
        monkeypatch.setenv("RESTEP_MAX_ROUNDS", "12")
        config = RestepConfig.load(str(path))
        assert config.llm.model == "anthropic/claude-sonnet-4-5-20250929"
        assert config.llm.temperature == 0.5
        assert config.engine.max_rounds == 12

    def test_missing_file(self) -> None:
        with pytest.raises(ConfigError, match="not found") as exc_info:
            RestepConfig.load("does-not-exist.json")
        assert exc_info.value.code == ErrorCodes.INVALID_CONFIG

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="not valid JSON"):
            RestepConfig.load(str(path))

    def test_invalid_value(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RESTEP_MAX_ROUNDS", "zero")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            RestepConfig.load()
