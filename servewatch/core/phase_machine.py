"""Deterministic supervisor phase machine.

Enforces:
- Valid phase transitions only (VALID_TRANSITIONS table)
- A single current phase with a single writer (the ProcessSupervisor)
- Every transition recorded in the history and announced to listeners
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from servewatch.models.phases import (
    VALID_TRANSITIONS,
    PhaseTransition,
    SupervisorPhase,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested phase transition is not valid."""


class PhaseMachine:
    """Holds the supervisor phase and validates every change.

    Parameters
    ----------
    on_transition:
        Optional callback invoked with each recorded ``PhaseTransition``.
    """

    def __init__(
        self,
        on_transition: Callable[[PhaseTransition], None] | None = None,
    ) -> None:
        self._phase = SupervisorPhase.NOT_STARTED
        self._history: list[PhaseTransition] = []
        self._on_transition = on_transition
        # Shutdown may arrive from a signal handler or another thread while
        # a poll loop is mid-transition; the check-and-set must be atomic.
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SupervisorPhase:
        return self._phase

    @property
    def history(self) -> list[PhaseTransition]:
        """Snapshot of all recorded transitions, oldest first."""
        return list(self._history)

    @property
    def is_stopped(self) -> bool:
        return self._phase == SupervisorPhase.STOPPED

    def visited(self, phase: SupervisorPhase) -> bool:
        """Whether *phase* was ever entered."""
        return any(t.to_phase == phase for t in self._history)

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def can_transition(self, target: SupervisorPhase) -> bool:
        return target in VALID_TRANSITIONS.get(self._phase, set())

    def transition(self, target: SupervisorPhase, reason: str = "") -> PhaseTransition:
        """Move to *target*, recording the transition.

        Raises
        ------
        InvalidTransitionError
            If the move is not allowed from the current phase.
        """
        with self._lock:
            current = self._phase
            if not self.can_transition(target):
                allowed = sorted(s.value for s in VALID_TRANSITIONS.get(current, set()))
                raise InvalidTransitionError(
                    f"Cannot transition from {current.value} to {target.value}. "
                    f"Allowed: {allowed}"
                )
            record = PhaseTransition(from_phase=current, to_phase=target, reason=reason)
            # The lock is re-entrant: code run while building the record may
            # already have moved the machine on.
            if self._phase != current:
                raise InvalidTransitionError(
                    f"Phase changed from {current.value} to {self._phase.value} "
                    f"while transitioning to {target.value}"
                )
            self._phase = target
            self._history.append(record)

        logger.info("Phase %s%s", record.label, f" ({reason})" if reason else "")
        if self._on_transition is not None:
            self._on_transition(record)
        return record

    def try_transition(
        self,
        target: SupervisorPhase,
        reason: str = "",
        *,
        expected: SupervisorPhase | None = None,
    ) -> PhaseTransition | None:
        """Like ``transition`` but returns ``None`` instead of raising.

        Used on paths that race with shutdown: if shutdown already moved the
        machine on (away from *expected*, when given), the losing transition
        is simply dropped.
        """
        with self._lock:
            if expected is not None and self._phase != expected:
                return None
            if not self.can_transition(target):
                return None
            try:
                return self.transition(target, reason)
            except InvalidTransitionError:
                return None

    def get_available_transitions(self) -> set[SupervisorPhase]:
        """Return the set of valid target phases from the current phase."""
        return set(VALID_TRANSITIONS.get(self._phase, set()))
