"""Launch and timing policy models handed to the ProcessSupervisor."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LaunchSpec(BaseModel):
    """What to spawn and where its combined output goes.

    The supervisor passes ``argv`` to the OS verbatim; it never interprets
    the flags.  ``env`` holds overrides merged over the parent environment.
    """

    model_config = ConfigDict(frozen=True)

    argv: list[str]
    env: dict[str, str] = {}
    cwd: Path | None = None
    log_path: Path = Path("logs/server.log")

    @field_validator("argv")
    @classmethod
    def _argv_not_empty(cls, value: list[str]) -> list[str]:
        if not value or not value[0]:
            raise ValueError("argv must name an executable")
        return value

    @property
    def executable(self) -> str:
        return self.argv[0]

    @property
    def command_line(self) -> str:
        """Space-joined argv, used as the default orphan sweep pattern."""
        return " ".join(self.argv)


class SupervisorPolicy(BaseModel):
    """Timing policy for the supervisor.  Numbers are policy, not algorithm."""

    model_config = ConfigDict(frozen=True)

    log_wait_timeout: float = Field(default=600.0, gt=0)
    health_wait_timeout: float = Field(default=60.0, gt=0)
    startup_poll_interval: float = Field(default=5.0, gt=0)
    steady_poll_interval: float = Field(default=10.0, gt=0)
    shutdown_grace_period: float = Field(default=10.0, gt=0)
    diagnostic_lines: int = Field(default=50, ge=0)
    orphan_sweep: bool = True
    # Extended regex handed to `pgrep -f` as is.  Unset: the first three argv
    # words, escaped to match literally.
    orphan_pattern: str | None = None
