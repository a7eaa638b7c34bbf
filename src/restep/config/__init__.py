"""Pydantic models for restep settings."""

from __future__ import annotations

import json
import os
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from restep.errors import ConfigError


class LLMConfig(BaseModel):
    """Model collaborator configuration.

    Model names use litellm's provider-prefix format:
        "openai/gpt-4o"
        "anthropic/claude-sonnet-4-5-20250929"
        "gemini/gemini-2.5-flash"

    API keys are read from env vars automatically by litellm
    (ANTHROPIC_API_KEY, GEMINI_API_KEY, OPENAI_API_KEY).
    """

    model: str = Field(default="openai/gpt-4o-mini")
    temperature: float | None = Field(default=None)
    max_tokens: int | None = Field(default=None)

    def sampling_options(self) -> dict[str, Any]:
        """Options forwarded to every streaming call."""
        options: dict[str, Any] = {}
        if self.temperature is not None:
            options["temperature"] = self.temperature
        if self.max_tokens is not None:
            options["max_tokens"] = self.max_tokens
        return options


class EngineSettings(BaseModel):
    """Round driver settings."""

    max_rounds: int = Field(
        default=100, ge=1, description="Hard cap on rounds per conversation"
    )
    stream_attempts: int = Field(
        default=2, ge=1, description="Streaming attempts per round on transient errors"
    )


class RestepConfig(BaseModel):
    """Top-level restep configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    engine: EngineSettings = Field(default_factory=EngineSettings)

    @classmethod
    def load(cls, config_path: str | None = None) -> RestepConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            RESTEP_MODEL        - Model string (litellm format with provider prefix)
            RESTEP_TEMPERATURE  - Sampling temperature
            RESTEP_MAX_TOKENS   - Max output tokens per round
            RESTEP_MAX_ROUNDS   - Round cap per conversation
        """
        from dotenv import load_dotenv

        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path:
            if not os.path.exists(config_path):
                raise ConfigError(f"Config file not found: {config_path}")
            with open(config_path) as f:
                try:
                    config_data = json.load(f)
                except json.JSONDecodeError as e:
                    raise ConfigError(f"Config file is not valid JSON: {e}") from e

        llm = config_data.get("llm", {})
        engine = config_data.get("engine", {})

        env_model = os.environ.get("RESTEP_MODEL")
        if env_model:
            llm["model"] = env_model

        env_temperature = os.environ.get("RESTEP_TEMPERATURE")
        if env_temperature:
            llm["temperature"] = env_temperature

        env_max_tokens = os.environ.get("RESTEP_MAX_TOKENS")
        if env_max_tokens:
            llm["max_tokens"] = env_max_tokens

        env_max_rounds = os.environ.get("RESTEP_MAX_ROUNDS")
        if env_max_rounds:
            engine["max_rounds"] = env_max_rounds

        if llm:
            config_data["llm"] = llm
        if engine:
            config_data["engine"] = engine

        try:
            return cls.model_validate(config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
