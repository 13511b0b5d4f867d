"""Signal/exit coordinator — runs the shutdown path exactly once.

SIGINT, SIGTERM and interpreter exit all funnel into one callback.  A
one-shot guard (a lock that is acquired without blocking and never
released) decides which trigger wins; every later trigger is a no-op.

Signal handlers only claim the guard and hand the callback to a worker
thread.  The interrupted main-thread frame may be holding the supervisor's
locks or sitting between a check and the matching update, so the shutdown
itself must never run inside the handler.
"""

from __future__ import annotations

import atexit
import logging
import signal
import threading
from collections.abc import Callable
from types import FrameType
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """Routes termination triggers to a single shutdown callback.

    Parameters
    ----------
    shutdown_callback:
        Called once, with no arguments, by whichever trigger fires first.
    signals:
        Signals to intercept.  Defaults to SIGINT and SIGTERM.

    Usage
    -----
    >>> with ShutdownCoordinator(supervisor.shutdown):
    ...     outcome = supervisor.run()
    """

    def __init__(
        self,
        shutdown_callback: Callable[[], Any],
        signals: tuple[signal.Signals, ...] = DEFAULT_SIGNALS,
    ) -> None:
        self._callback = shutdown_callback
        self._signals = signals
        self._guard = threading.Lock()
        self._reason: str | None = None
        self._worker: threading.Thread | None = None
        self._previous: dict[signal.Signals, Any] = {}
        self._installed = False

    @property
    def fired(self) -> bool:
        return self._guard.locked()

    @property
    def reason(self) -> str | None:
        """Name of the trigger that ran the callback, if any."""
        return self._reason

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def install(self) -> None:
        """Register the signal handlers and the atexit hook."""
        if self._installed:
            return
        if threading.current_thread() is threading.main_thread():
            for sig in self._signals:
                self._previous[sig] = signal.getsignal(sig)
                signal.signal(sig, self._handle_signal)
        else:
            logger.warning(
                "Not on the main thread; signal handlers not installed, "
                "relying on the exit hook only"
            )
        atexit.register(self._handle_exit)
        self._installed = True

    def uninstall(self) -> None:
        """Restore previous signal handlers and drop the atexit hook."""
        if not self._installed:
            return
        for sig, previous in self._previous.items():
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()
        atexit.unregister(self._handle_exit)
        self._installed = False

    def __enter__(self) -> ShutdownCoordinator:
        self.install()
        return self

    def __exit__(self, *exc_info: object) -> None:
        # Leaving the block is the normal-exit trigger.
        try:
            self.trigger("normal exit")
            self.wait()
        finally:
            self.uninstall()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def trigger(self, reason: str) -> bool:
        """Run the shutdown callback on the calling thread if no other
        trigger has claimed it.

        Returns ``True`` if this call ran the callback.
        """
        if not self._claim(reason):
            return False
        self._callback()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a callback started by a signal has finished.

        Returns ``False`` only if *timeout* expired first.
        """
        worker = self._worker
        if worker is None or worker is threading.current_thread():
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def _claim(self, reason: str) -> bool:
        if not self._guard.acquire(blocking=False):
            logger.debug("Shutdown already triggered (%s); ignoring %s", self._reason, reason)
            return False
        self._reason = reason
        logger.info("Shutdown triggered by %s", reason)
        return True

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        if not self._claim(f"signal {signal.Signals(signum).name}"):
            return
        self._worker = threading.Thread(
            target=self._callback, name="servewatch-shutdown", daemon=True
        )
        self._worker.start()

    def _handle_exit(self) -> None:
        self.trigger("interpreter exit")
        self.wait()
