"""StatusSnapshot — a frozen, point-in-time view of a supervisor.

The snapshot is a projection: it is computed fresh from the supervisor on
every ``ProcessSupervisor.snapshot()`` call and never persisted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from servewatch.models.health import HealthState, ProbeResult
from servewatch.models.outcome import FatalReason
from servewatch.models.phases import PhaseTransition, SupervisorPhase
from servewatch.models.readiness import ReadinessEvent


class StatusSnapshot(BaseModel):
    """Everything an operator wants to see about a supervised server."""

    model_config = ConfigDict(frozen=True)

    phase: SupervisorPhase
    pid: int | None = None
    command: str = ""
    log_path: Path
    endpoint: str
    health: HealthState = HealthState.UNKNOWN
    last_probe: ProbeResult | None = None
    probe_attempts: int = 0
    consecutive_failures: int = 0
    readiness_events: list[ReadinessEvent] = []
    transitions: list[PhaseTransition] = []
    transient_errors: int = 0
    fatal_reason: FatalReason | None = None
    taken_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def server_started(self) -> bool:
        return ReadinessEvent.SERVER_STARTED in self.readiness_events

    @property
    def uptime_seconds(self) -> float | None:
        """Seconds since the phase first became RUNNING, if it did."""
        for transition in self.transitions:
            if transition.to_phase == SupervisorPhase.RUNNING:
                return (self.taken_at - transition.at).total_seconds()
        return None
