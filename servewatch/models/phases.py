"""Supervisor phase models — deterministic lifecycle transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SupervisorPhase(str, Enum):
    """Lifecycle phase of a supervised server process."""

    NOT_STARTED = "not_started"
    LAUNCHING = "launching"
    AWAITING_LOG_SIGNAL = "awaiting_log_signal"
    AWAITING_HEALTHY = "awaiting_healthy"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


# Valid phase transitions, enforced structurally by PhaseMachine.
# STOPPED is terminal.  Direct edges into STOPPED are fatal paths (or a
# shutdown requested before anything was launched).
VALID_TRANSITIONS: dict[SupervisorPhase, set[SupervisorPhase]] = {
    SupervisorPhase.NOT_STARTED: {SupervisorPhase.LAUNCHING, SupervisorPhase.STOPPED},
    SupervisorPhase.LAUNCHING: {
        SupervisorPhase.AWAITING_LOG_SIGNAL,
        SupervisorPhase.SHUTTING_DOWN,
        SupervisorPhase.STOPPED,  # spawn failed
    },
    SupervisorPhase.AWAITING_LOG_SIGNAL: {
        SupervisorPhase.AWAITING_HEALTHY,
        SupervisorPhase.SHUTTING_DOWN,
        SupervisorPhase.STOPPED,  # died during startup
    },
    SupervisorPhase.AWAITING_HEALTHY: {
        SupervisorPhase.RUNNING,
        SupervisorPhase.SHUTTING_DOWN,
        SupervisorPhase.STOPPED,  # died during startup / health timeout
    },
    SupervisorPhase.RUNNING: {
        SupervisorPhase.SHUTTING_DOWN,
        SupervisorPhase.STOPPED,  # exited on its own
    },
    SupervisorPhase.SHUTTING_DOWN: {SupervisorPhase.STOPPED},
    SupervisorPhase.STOPPED: set(),  # terminal
}

# Phases in which a child process may be alive.
ACTIVE_PHASES: frozenset[SupervisorPhase] = frozenset(
    {
        SupervisorPhase.LAUNCHING,
        SupervisorPhase.AWAITING_LOG_SIGNAL,
        SupervisorPhase.AWAITING_HEALTHY,
        SupervisorPhase.RUNNING,
    }
)


class PhaseTransition(BaseModel):
    """Records a single phase transition for the status history."""

    model_config = ConfigDict(frozen=True)

    from_phase: SupervisorPhase
    to_phase: SupervisorPhase
    reason: str = ""
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def label(self) -> str:
        """``"from->to"`` form used in logs and journals."""
        return f"{self.from_phase.value}->{self.to_phase.value}"
