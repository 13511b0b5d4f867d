"""Readiness signal models — the data-driven log pattern table.

The supervisor never compares log text inline.  Every readiness signal is a
``ReadinessRule`` in an ordered table; adding a signal means adding a row.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class ReadinessEvent(str, Enum):
    """Milestones a server process announces in its log stream."""

    WEIGHTS_LOADED = "weights_loaded"
    MODEL_LOADED = "model_loaded"
    COMPILATION_IN_PROGRESS = "compilation_in_progress"
    SERVER_STARTED = "server_started"


# The only event that ends the log-based wait.
TERMINAL_READINESS_EVENT = ReadinessEvent.SERVER_STARTED


class ReadinessRule(BaseModel):
    """Maps a log-line substring to a readiness event."""

    model_config = ConfigDict(frozen=True)

    pattern: str
    event: ReadinessEvent

    @field_validator("pattern")
    @classmethod
    def _pattern_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("readiness pattern must not be blank")
        return value

    def matches(self, line: str) -> bool:
        return self.pattern in line


# Evaluated in order; the first matching rule classifies the line.
DEFAULT_READINESS_RULES: list[ReadinessRule] = [
    ReadinessRule(pattern="Uvicorn running on", event=ReadinessEvent.SERVER_STARTED),
    ReadinessRule(
        pattern="Application startup complete", event=ReadinessEvent.SERVER_STARTED
    ),
    ReadinessRule(pattern="Started server process", event=ReadinessEvent.SERVER_STARTED),
    ReadinessRule(pattern="Loading weights took", event=ReadinessEvent.WEIGHTS_LOADED),
    ReadinessRule(pattern="Model loading took", event=ReadinessEvent.MODEL_LOADED),
    ReadinessRule(
        pattern="Compiling a graph", event=ReadinessEvent.COMPILATION_IN_PROGRESS
    ),
]
