"""Fatal reasons, process exit codes, and the terminal supervisor outcome."""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict

from servewatch.models.phases import SupervisorPhase


class ExitCode(IntEnum):
    """Process exit codes — one distinct code per fatal reason.

    Operators rely on these to tell "spawn failed" from "died during
    startup" from "health timeout" without reading logs.
    """

    OK = 0
    PRECONDITION_FAILED = 2
    SPAWN_FAILED = 3
    DIED_DURING_STARTUP = 4
    HEALTH_TIMEOUT = 5
    EXITED_WHILE_RUNNING = 6
    INTERRUPTED = 130


class FatalReason(str, Enum):
    """Why the supervisor entered STOPPED through an error path."""

    PRECONDITION_FAILED = "precondition_failed"
    SPAWN_FAILED = "spawn_failed"
    DIED_DURING_STARTUP = "died_during_startup"
    HEALTH_TIMEOUT = "health_timeout"
    EXITED_WHILE_RUNNING = "exited_while_running"

    @property
    def exit_code(self) -> ExitCode:
        return _REASON_EXIT_CODES[self]


_REASON_EXIT_CODES: dict[FatalReason, ExitCode] = {
    FatalReason.PRECONDITION_FAILED: ExitCode.PRECONDITION_FAILED,
    FatalReason.SPAWN_FAILED: ExitCode.SPAWN_FAILED,
    FatalReason.DIED_DURING_STARTUP: ExitCode.DIED_DURING_STARTUP,
    FatalReason.HEALTH_TIMEOUT: ExitCode.HEALTH_TIMEOUT,
    FatalReason.EXITED_WHILE_RUNNING: ExitCode.EXITED_WHILE_RUNNING,
}


class SupervisorOutcome(BaseModel):
    """Terminal result of a supervised run.

    ``reached_running`` distinguishes a graceful shutdown after the server
    was ready (exit 0) from an interrupt during startup.
    """

    model_config = ConfigDict(frozen=True)

    phase: SupervisorPhase
    exit_code: ExitCode
    reached_running: bool = False
    fatal_reason: FatalReason | None = None
    message: str = ""
    hint: str = ""
    diagnostics: list[str] = []

    @property
    def is_fatal(self) -> bool:
        return self.fatal_reason is not None
