"""Event routing — fans supervisor events out to every configured sink."""

from servewatch.routing.dispatcher import SinkDispatchError, SinkDispatcher
from servewatch.routing.sinks import BaseSink

__all__ = ["BaseSink", "SinkDispatchError", "SinkDispatcher"]
