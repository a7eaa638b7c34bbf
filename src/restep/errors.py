"""Error taxonomy for restep.

Only ``BuilderError`` and ``EngineError`` escape a running conversation. The
tool-level errors are raised inside the dispatcher and turned into structured
results for the model.
"""

from __future__ import annotations

from typing import Any


class ErrorCodes:
    """String constants carried on ``RestepError.code``."""

    BUILDER_FAILED = "BUILDER_FAILED"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_OUTPUT = "INVALID_OUTPUT"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    UNKNOWN_SUBCALL = "UNKNOWN_SUBCALL"
    MODEL_REQUIRED = "MODEL_REQUIRED"
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_ASPECT = "INVALID_ASPECT"
    AGENT_FAILED = "AGENT_FAILED"


class RestepError(Exception):
    """Base class for all restep errors."""

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class BuilderError(RestepError):
    """The builder function raised while declaring a round."""

    def __init__(self, message: str, round_index: int) -> None:
        super().__init__(message, ErrorCodes.BUILDER_FAILED)
        self.round_index = round_index


class ToolInputError(RestepError):
    """Model-supplied arguments do not match a tool's input model."""

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, ErrorCodes.INVALID_INPUT)
        self.details = details or []


class ToolOutputError(RestepError):
    """A tool or agent result does not match its declared response model."""

    def __init__(
        self,
        message: str,
        output: Any = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message, ErrorCodes.INVALID_OUTPUT)
        self.output = output
        self.details = details or []


class ResolutionError(RestepError):
    """A requested tool or sub-call name is not declared."""

    def __init__(self, message: str, name: str, code: str = ErrorCodes.UNKNOWN_TOOL) -> None:
        super().__init__(message, code)
        self.name = name


class EngineError(RestepError):
    """The engine was misused (no model, bad step override aspect, ...)."""


class ConfigError(RestepError):
    """Configuration could not be loaded or validated."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCodes.INVALID_CONFIG)
