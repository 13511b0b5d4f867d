"""servewatch data models — all Pydantic v2, frozen where they are values."""

from servewatch.models.events import EventKind, SupervisorEvent
from servewatch.models.health import HealthState, ProbeResult
from servewatch.models.launch import LaunchSpec, SupervisorPolicy
from servewatch.models.outcome import ExitCode, FatalReason, SupervisorOutcome
from servewatch.models.phases import (
    ACTIVE_PHASES,
    VALID_TRANSITIONS,
    PhaseTransition,
    SupervisorPhase,
)
from servewatch.models.readiness import (
    DEFAULT_READINESS_RULES,
    TERMINAL_READINESS_EVENT,
    ReadinessEvent,
    ReadinessRule,
)

__all__ = [
    # events
    "EventKind",
    "SupervisorEvent",
    # health
    "HealthState",
    "ProbeResult",
    # launch
    "LaunchSpec",
    "SupervisorPolicy",
    # outcome
    "ExitCode",
    "FatalReason",
    "SupervisorOutcome",
    # phases
    "ACTIVE_PHASES",
    "VALID_TRANSITIONS",
    "PhaseTransition",
    "SupervisorPhase",
    # readiness
    "DEFAULT_READINESS_RULES",
    "TERMINAL_READINESS_EVENT",
    "ReadinessEvent",
    "ReadinessRule",
]
