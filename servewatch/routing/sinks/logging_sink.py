"""Logging sink — writes each supervisor event to the Python log."""

from __future__ import annotations

import logging

from servewatch.models.events import EventKind, SupervisorEvent

logger = logging.getLogger(__name__)

_LEVELS: dict[EventKind, int] = {
    EventKind.PHASE: logging.DEBUG,
    EventKind.READINESS: logging.INFO,
    EventKind.HEALTH: logging.DEBUG,
    EventKind.FATAL: logging.ERROR,
}


class LoggingSink:
    """Logs events at a level chosen by their kind.

    Readiness milestones are the interesting progress signal while a model
    loads, so they log at INFO; phase and health events are already logged
    by the components that produce them.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    @property
    def sink_name(self) -> str:
        return "logging"

    def accept(self, event: SupervisorEvent) -> None:
        self._log.log(_LEVELS.get(event.kind, logging.INFO), "%s", event.summary)
