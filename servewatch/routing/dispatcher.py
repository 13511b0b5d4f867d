"""SinkDispatcher — routes supervisor events to ALL configured sinks.

Every event dispatched through this module is fanned out to every
registered sink.  Sink failures are logged but do not prevent delivery to
remaining sinks, and never interrupt the supervising loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from servewatch.models.events import SupervisorEvent

if TYPE_CHECKING:
    from servewatch.routing.sinks import BaseSink

logger = logging.getLogger(__name__)


class SinkDispatchError(RuntimeError):
    """Raised when every registered sink fails for an event."""


class SinkDispatcher:
    """Routes events to ALL configured sinks.

    Usage
    -----
    >>> dispatcher = SinkDispatcher()
    >>> dispatcher.register_sink(LoggingSink())
    >>> dispatcher.register_sink(JournalFileSink("logs/events.jsonl"))
    >>> dispatcher.dispatch(event)
    """

    def __init__(self) -> None:
        self._sinks: list[BaseSink] = []

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def register_sink(self, sink: BaseSink) -> None:
        """Register a sink.  Duplicate registration is silently ignored."""
        if sink not in self._sinks:
            self._sinks.append(sink)
            logger.debug("Registered sink: %s", sink.sink_name)

    def unregister_sink(self, sink: BaseSink) -> None:
        try:
            self._sinks.remove(sink)
            logger.debug("Unregistered sink: %s", sink.sink_name)
        except ValueError:
            pass

    @property
    def registered_sinks(self) -> list[BaseSink]:
        """Return a copy of the registered sink list."""
        return list(self._sinks)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, event: SupervisorEvent) -> list[str]:
        """Dispatch an event to ALL registered sinks.

        Returns the names of the sinks that accepted the event.

        Raises
        ------
        SinkDispatchError
            If *all* sinks fail.  Individual failures are tolerated.
        """
        if not self._sinks:
            return []

        succeeded: list[str] = []
        errors: list[tuple[str, Exception]] = []

        for sink in self._sinks:
            try:
                sink.accept(event)
                succeeded.append(sink.sink_name)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Sink %s failed for event %s: %s",
                    sink.sink_name,
                    event.event_id,
                    exc,
                )
                errors.append((sink.sink_name, exc))

        if errors and not succeeded:
            raise SinkDispatchError(
                f"All {len(errors)} sinks failed for event {event.event_id}: "
                + "; ".join(f"{name}: {exc}" for name, exc in errors)
            )

        return succeeded

    def publish(self, event: SupervisorEvent) -> None:
        """Dispatch without ever raising — for use inside supervisor loops."""
        try:
            self.dispatch(event)
        except SinkDispatchError as exc:
            logger.warning("Event %s not delivered: %s", event.kind.value, exc)
