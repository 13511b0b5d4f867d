"""Supervisor events — everything surfaced to routing sinks.

One envelope type covers phase transitions, readiness milestones, health
probe results, and fatal transitions.  Fields not relevant to a given
``kind`` stay ``None``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from servewatch.models.health import HealthState
from servewatch.models.outcome import FatalReason
from servewatch.models.phases import SupervisorPhase
from servewatch.models.readiness import ReadinessEvent


class EventKind(str, Enum):
    PHASE = "phase"
    READINESS = "readiness"
    HEALTH = "health"
    FATAL = "fatal"


class SupervisorEvent(BaseModel):
    """A single observable supervisor event."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: EventKind
    pid: int | None = None
    phase: SupervisorPhase | None = None
    from_phase: SupervisorPhase | None = None
    readiness: ReadinessEvent | None = None
    health: HealthState | None = None
    fatal_reason: FatalReason | None = None
    message: str = ""
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def summary(self) -> str:
        """One-line description used by the logging sink."""
        if self.kind == EventKind.PHASE and self.from_phase is not None:
            text = f"phase {self.from_phase.value} -> {self.phase.value}"
        elif self.kind == EventKind.READINESS and self.readiness is not None:
            text = f"readiness {self.readiness.value}"
        elif self.kind == EventKind.HEALTH and self.health is not None:
            text = f"health {self.health.value}"
        elif self.kind == EventKind.FATAL and self.fatal_reason is not None:
            text = f"fatal {self.fatal_reason.value}"
        else:
            text = self.kind.value
        if self.message:
            text = f"{text}: {self.message}"
        return text
