"""Sink protocol for supervisor event routing.

All sinks implement the ``BaseSink`` protocol: a ``sink_name`` property
and an ``accept(event)`` method.  The dispatcher calls ``accept``
on every registered sink for every dispatched event.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from servewatch.models.events import SupervisorEvent


@runtime_checkable
class BaseSink(Protocol):
    """Protocol that every event sink must implement.

    Attributes
    ----------
    sink_name : str
        A unique human-readable identifier for this sink instance
        (e.g. ``"logging"``, ``"journal_file"``).
    """

    @property
    def sink_name(self) -> str:
        """Return the unique name of this sink."""
        ...

    def accept(self, event: SupervisorEvent) -> None:
        """Accept and process an event.

        Critical failures may raise; the dispatcher will log them and
        continue to the next sink.
        """
        ...
