"""Process supervisor — launch, readiness, health, and guaranteed teardown.

The supervisor owns exactly one child process and drives it through the
phase machine:

    not_started -> launching -> awaiting_log_signal -> awaiting_healthy
        -> running -> shutting_down -> stopped

The log-based wait always finishes (by signal or by its soft timeout) before
the first health probe is sent.  The health-based wait has a hard timeout.
Every sleep is a wait on the stop event, so ``shutdown()`` interrupts any
poll loop within one poll interval.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import signal
import subprocess
import threading
import time
from collections.abc import Callable
from typing import IO, Any

from servewatch.core.health import HealthPoller
from servewatch.core.log_tail import LogReadError, LogTailReader
from servewatch.core.phase_machine import InvalidTransitionError, PhaseMachine
from servewatch.core.readiness import ReadinessDetector
from servewatch.models.events import EventKind, SupervisorEvent
from servewatch.models.launch import LaunchSpec, SupervisorPolicy
from servewatch.models.outcome import ExitCode, FatalReason, SupervisorOutcome
from servewatch.models.phases import ACTIVE_PHASES, PhaseTransition, SupervisorPhase
from servewatch.monitor.status import StatusSnapshot
from servewatch.routing.dispatcher import SinkDispatcher

logger = logging.getLogger(__name__)

# Upper bound for pgrep during the orphan sweep.
_SWEEP_TIMEOUT_SECONDS = 5.0

# How often a dying process group is checked for survivors.
_GROUP_POLL_SECONDS = 0.05

_ERE_SPECIAL = re.compile(r"([.\[\]()*+?{}|^$\\])")


def ere_escape(text: str) -> str:
    """Escape *text* so POSIX extended regex matching (pgrep -f) is literal."""
    return _ERE_SPECIAL.sub(r"\\\1", text)


class SupervisorFatalError(RuntimeError):
    """Raised after the supervisor has entered STOPPED through an error path.

    Attributes
    ----------
    reason:
        The ``FatalReason``; ``reason.exit_code`` is the process exit code.
    diagnostics:
        The last lines of the server log, when relevant.
    hint:
        Remediation hint for the operator.
    """

    def __init__(
        self,
        reason: FatalReason,
        message: str,
        *,
        diagnostics: list[str] | None = None,
        hint: str = "",
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.diagnostics = list(diagnostics or [])
        self.hint = hint

    @property
    def exit_code(self) -> ExitCode:
        return self.reason.exit_code


class ProcessSupervisor:
    """Supervises a single long-running server process.

    Parameters
    ----------
    launch:
        What to spawn and where its combined output goes.
    poller:
        Health poller aimed at the server's health endpoint.
    policy:
        Timeouts and intervals.  Defaults to ``SupervisorPolicy()``.
    detector:
        Readiness detector.  Defaults to the standard rule table.
    dispatcher:
        Receives every ``SupervisorEvent``.  Defaults to an empty dispatcher.
    clock:
        Monotonic clock used for deadlines.
    """

    def __init__(
        self,
        launch: LaunchSpec,
        poller: HealthPoller,
        policy: SupervisorPolicy | None = None,
        *,
        detector: ReadinessDetector | None = None,
        dispatcher: SinkDispatcher | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.launch = launch
        self.policy = policy or SupervisorPolicy()
        self._poller = poller
        self._detector = detector or ReadinessDetector()
        self._dispatcher = dispatcher or SinkDispatcher()
        self._reader = LogTailReader(launch.log_path)
        self._clock = clock
        self._machine = PhaseMachine(on_transition=self._on_transition)

        self._process: subprocess.Popen[bytes] | None = None
        self._log_handle: IO[bytes] | None = None
        self._stop = threading.Event()
        self._shutdown_done = threading.Event()
        self._fatal: SupervisorFatalError | None = None
        self._transient_errors = 0
        self._terminations = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SupervisorPhase:
        return self._machine.phase

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def history(self) -> list[PhaseTransition]:
        return self._machine.history

    @property
    def detector(self) -> ReadinessDetector:
        return self._detector

    @property
    def poller(self) -> HealthPoller:
        return self._poller

    @property
    def transient_errors(self) -> int:
        """Log read failures recovered from so far."""
        return self._transient_errors

    @property
    def termination_count(self) -> int:
        """How many times the termination sequence has run (0 or 1)."""
        return self._terminations

    def is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def snapshot(self) -> StatusSnapshot:
        """Produce a point-in-time StatusSnapshot."""
        return StatusSnapshot(
            phase=self.phase,
            pid=self.pid,
            command=self.launch.command_line,
            log_path=self.launch.log_path,
            endpoint=self._poller.endpoint,
            health=self._poller.state,
            last_probe=self._poller.last_result,
            probe_attempts=self._poller.attempts,
            consecutive_failures=self._poller.consecutive_failures,
            readiness_events=self._detector.seen,
            transitions=self._machine.history,
            transient_errors=self._transient_errors,
            fatal_reason=self._fatal.reason if self._fatal else None,
        )

    # ------------------------------------------------------------------
    # Full lifecycle
    # ------------------------------------------------------------------

    def run(self) -> SupervisorOutcome:
        """Start, wait for readiness and health, then monitor until shutdown.

        Never raises ``SupervisorFatalError``: fatal transitions come back
        as a ``SupervisorOutcome`` carrying the distinct exit code.
        """
        try:
            self.start()
            if not self._stop.is_set():
                self.wait_for_log_readiness()
            if not self._stop.is_set():
                self.wait_for_healthy()
            if not self._stop.is_set():
                self.monitor()
        except SupervisorFatalError as exc:
            return self._build_outcome(exc)

        # Shutdown may still be in progress on another thread.
        self._shutdown_done.wait(self.policy.shutdown_grace_period * 2 + _SWEEP_TIMEOUT_SECONDS)
        return self._build_outcome(None)

    def _build_outcome(self, exc: SupervisorFatalError | None) -> SupervisorOutcome:
        reached_running = self._machine.visited(SupervisorPhase.RUNNING)
        if exc is not None:
            return SupervisorOutcome(
                phase=self.phase,
                exit_code=exc.exit_code,
                reached_running=reached_running,
                fatal_reason=exc.reason,
                message=str(exc),
                hint=exc.hint,
                diagnostics=exc.diagnostics,
            )
        if reached_running:
            return SupervisorOutcome(
                phase=self.phase,
                exit_code=ExitCode.OK,
                reached_running=True,
                message="Server shut down after reaching running",
            )
        return SupervisorOutcome(
            phase=self.phase,
            exit_code=ExitCode.INTERRUPTED,
            message="Shutdown requested before the server was ready",
        )

    # ------------------------------------------------------------------
    # Phase 1: launch
    # ------------------------------------------------------------------

    def start(self) -> int | None:
        """Spawn the child process and enter AWAITING_LOG_SIGNAL.

        Returns the child pid, or ``None`` if shutdown won a race with the
        launch.

        Raises
        ------
        InvalidTransitionError
            If this supervisor already launched a process.
        SupervisorFatalError
            With ``SPAWN_FAILED`` if the executable cannot be spawned.
        """
        self._machine.transition(SupervisorPhase.LAUNCHING, "start requested")

        log_path = self.launch.log_path
        env = {**os.environ, **self.launch.env}
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self._reader.reset_to_end()
            self._detector.reset()
            self._log_handle = log_path.open("ab")
            self._process = subprocess.Popen(
                self.launch.argv,
                stdin=subprocess.DEVNULL,
                stdout=self._log_handle,
                stderr=subprocess.STDOUT,
                env=env,
                cwd=self.launch.cwd,
                start_new_session=True,
            )
        except (OSError, LogReadError, ValueError) as exc:
            self._close_log_handle()
            self._fail(
                FatalReason.SPAWN_FAILED,
                f"Cannot spawn {self.launch.executable!r}: {exc}",
                hint="Check that the executable is installed and on PATH.",
                expected=SupervisorPhase.LAUNCHING,
                with_diagnostics=False,
            )
            return None

        logger.info(
            "Launched pid %d: %s (log: %s)",
            self._process.pid,
            self.launch.command_line,
            log_path,
        )
        if self._machine.try_transition(
            SupervisorPhase.AWAITING_LOG_SIGNAL,
            f"pid {self._process.pid}",
            expected=SupervisorPhase.LAUNCHING,
        ) is None:
            # Shutdown ran while Popen was in flight and found no child.
            self._terminate_child()
            self._close_log_handle()
            return None
        return self._process.pid

    # ------------------------------------------------------------------
    # Phase 2: log-based readiness
    # ------------------------------------------------------------------

    def wait_for_log_readiness(self) -> bool:
        """Wait for a server-started log line, then enter AWAITING_HEALTHY.

        The timeout is soft: when it expires a warning is logged and the
        machine proceeds to the health phase anyway.  Returns ``True`` if
        the signal was seen, ``False`` on timeout or shutdown.

        Raises
        ------
        SupervisorFatalError
            With ``DIED_DURING_STARTUP`` if the child exits while waiting.
        """
        phase = SupervisorPhase.AWAITING_LOG_SIGNAL
        if not self._enter_loop(phase):
            return False

        timeout = self.policy.log_wait_timeout
        deadline = self._clock() + timeout
        while not self._stop.is_set():
            self._drain_log()
            if self._detector.server_started:
                self._machine.try_transition(
                    SupervisorPhase.AWAITING_HEALTHY,
                    "server started signal",
                    expected=phase,
                )
                return True

            self._check_alive(phase)

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(
                    "No server-started log signal within %gs; "
                    "proceeding to health checks anyway",
                    timeout,
                )
                self._machine.try_transition(
                    SupervisorPhase.AWAITING_HEALTHY,
                    "log wait timed out",
                    expected=phase,
                )
                return False

            self._stop.wait(min(self.policy.startup_poll_interval, remaining))
        return False

    # ------------------------------------------------------------------
    # Phase 3: probe-based health
    # ------------------------------------------------------------------

    def wait_for_healthy(self) -> bool:
        """Probe the health endpoint until healthy, then enter RUNNING.

        The timeout is hard.  Returns ``True`` once RUNNING, ``False`` if
        shutdown interrupted the wait.

        Raises
        ------
        SupervisorFatalError
            ``DIED_DURING_STARTUP`` if the child exits, ``HEALTH_TIMEOUT``
            if no probe succeeds in time.  After a health timeout the child
            is left running for manual inspection.
        """
        phase = SupervisorPhase.AWAITING_HEALTHY
        if not self._enter_loop(phase):
            return False

        timeout = self.policy.health_wait_timeout
        deadline = self._clock() + timeout
        while not self._stop.is_set():
            self._drain_log()
            self._check_alive(phase)
            if self._stop.is_set():
                break

            result = self._poller.probe_detailed()
            self._publish(
                SupervisorEvent(
                    kind=EventKind.HEALTH,
                    pid=self.pid,
                    phase=self.phase,
                    health=result.state,
                    message=result.detail,
                )
            )
            if result.healthy:
                record = self._machine.try_transition(
                    SupervisorPhase.RUNNING,
                    f"healthy on probe #{result.attempt}",
                    expected=phase,
                )
                return record is not None

            remaining = deadline - self._clock()
            if remaining <= 0:
                self._fail(
                    FatalReason.HEALTH_TIMEOUT,
                    f"Server did not become healthy within {timeout:g}s "
                    f"(last probe: {result.detail})",
                    hint=(
                        f"Inspect the server log at {self.launch.log_path}; "
                        f"pid {self.pid} was left running for inspection."
                    ),
                    expected=phase,
                )
                return False

            logger.debug(
                "Not healthy yet (%s); %.0fs of health wait left",
                result.detail,
                remaining,
            )
            self._stop.wait(min(self.policy.startup_poll_interval, remaining))
        return False

    # ------------------------------------------------------------------
    # Phase 4: steady state
    # ------------------------------------------------------------------

    def monitor(self) -> None:
        """Probe periodically until shutdown.  Failed probes only warn.

        Raises
        ------
        SupervisorFatalError
            With ``EXITED_WHILE_RUNNING`` if the child exits on its own.
        """
        phase = SupervisorPhase.RUNNING
        if not self._enter_loop(phase):
            return

        while not self._stop.wait(self.policy.steady_poll_interval):
            self._drain_log()
            code = self._process.poll() if self._process is not None else None
            if code is not None:
                if self._stop.is_set():
                    break
                self._fail(
                    FatalReason.EXITED_WHILE_RUNNING,
                    f"Server pid {self.pid} exited with code {code} while running",
                    hint=f"See {self.launch.log_path} for the server's last output.",
                    expected=phase,
                )
                continue

            result = self._poller.probe_detailed()
            self._publish(
                SupervisorEvent(
                    kind=EventKind.HEALTH,
                    pid=self.pid,
                    phase=self.phase,
                    health=result.state,
                    message=result.detail,
                )
            )
            if not result.healthy:
                logger.warning(
                    "Health probe #%d failed (%s); %d consecutive failure(s)",
                    result.attempt,
                    result.detail,
                    self._poller.consecutive_failures,
                )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self) -> bool:
        """Terminate the child and enter STOPPED.

        Idempotent: only the first call from an active phase runs the
        termination sequence; later calls (and calls once STOPPED) are
        no-ops.  Returns ``True`` if this call ran the sequence.
        """
        self._stop.set()

        if self._machine.try_transition(
            SupervisorPhase.STOPPED,
            "shutdown before start",
            expected=SupervisorPhase.NOT_STARTED,
        ):
            self._shutdown_done.set()
            return False

        if self.phase not in ACTIVE_PHASES or self._machine.try_transition(
            SupervisorPhase.SHUTTING_DOWN, "shutdown requested"
        ) is None:
            logger.debug("Shutdown ignored in phase %s", self.phase.value)
            return False

        try:
            self._terminations += 1
            self._terminate_child()
            self._sweep_orphans()
        finally:
            self._close_log_handle()
            self._machine.transition(SupervisorPhase.STOPPED, "shutdown complete")
            self._shutdown_done.set()
        return True

    def _terminate_child(self) -> None:
        """SIGTERM the child's process group, then SIGKILL what survives.

        Runs even when the group leader has already exited: workers it
        spawned stay in its group and keep their resources until signalled.
        """
        proc = self._process
        if proc is None or not self._group_alive(proc):
            return

        grace = self.policy.shutdown_grace_period
        logger.info("Terminating process group %d", proc.pid)
        self._signal_child(proc, kill=False)
        if self._wait_group(proc, grace):
            return
        logger.warning(
            "Process group %d still alive %gs after SIGTERM; killing", proc.pid, grace
        )

        self._signal_child(proc, kill=True)
        if not self._wait_group(proc, grace):
            logger.error("Process group %d did not exit after SIGKILL", proc.pid)

    def _group_alive(self, proc: subprocess.Popen[Any]) -> bool:
        if proc.poll() is None:
            return True
        if not hasattr(os, "killpg"):
            return False
        try:
            os.killpg(proc.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def _wait_group(self, proc: subprocess.Popen[Any], timeout: float) -> bool:
        """Wait up to *timeout* for every member of the group to exit."""
        deadline = self._clock() + timeout
        while self._group_alive(proc):
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            time.sleep(min(_GROUP_POLL_SECONDS, remaining))
        return True

    def _signal_child(self, proc: subprocess.Popen[Any], *, kill: bool) -> None:
        """Signal the child's process group, retrying once on failure."""
        for attempt in (1, 2):
            try:
                if hasattr(os, "killpg"):
                    sig = signal.SIGKILL if kill else signal.SIGTERM
                    # start_new_session made the child a group leader.
                    os.killpg(proc.pid, sig)
                elif kill:
                    proc.kill()
                else:
                    proc.terminate()
                return
            except ProcessLookupError:
                return
            except OSError as exc:
                if attempt == 2:
                    logger.warning(
                        "Could not signal pid %d (%s); giving up", proc.pid, exc
                    )
                    return
                logger.debug("Signalling pid %d failed (%s); retrying", proc.pid, exc)

    def _sweep_orphans(self) -> None:
        """Best-effort SIGTERM to stray processes running the same command."""
        if not self.policy.orphan_sweep:
            return
        pgrep = shutil.which("pgrep")
        if not pgrep:
            logger.debug("Skipping orphan sweep: 'pgrep' not available on PATH")
            return

        pattern = self.policy.orphan_pattern or ere_escape(" ".join(self.launch.argv[:3]))
        try:
            result = subprocess.run(
                [pgrep, "-f", pattern],
                check=False,
                capture_output=True,
                text=True,
                timeout=_SWEEP_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Orphan sweep failed: %s", exc)
            return

        own = {os.getpid(), os.getppid()}
        orphans = [
            int(tok) for tok in result.stdout.split() if tok.isdigit() and int(tok) not in own
        ]
        for pid in orphans:
            try:
                os.kill(pid, signal.SIGTERM)
            except OSError as exc:
                logger.debug("Orphan %d not signalled: %s", pid, exc)
        if orphans:
            logger.info("Orphan sweep signalled %d process(es) matching %r", len(orphans), pattern)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _enter_loop(self, phase: SupervisorPhase) -> bool:
        """Whether a poll loop for *phase* should run at all.

        Raises only for a genuinely wrong phase; a shutdown that got in
        first (before or during this check) makes the loop a no-op.
        """
        current = self.phase
        # shutdown() sets the stop event before it leaves *current*.
        if current != SupervisorPhase.NOT_STARTED and (
            self._stop.is_set() or current not in ACTIVE_PHASES
        ):
            return False
        if current != phase:
            raise InvalidTransitionError(
                f"Expected phase {phase.value}, supervisor is {self.phase.value}"
            )
        return True

    def _drain_log(self) -> None:
        try:
            lines = self._reader.poll()
        except LogReadError as exc:
            self._transient_errors += 1
            logger.warning("Transient log read error (%d so far): %s", self._transient_errors, exc)
            return

        for line in lines:
            event = self._detector.observe(line)
            if event is None:
                continue
            logger.info("Readiness signal: %s", event.value)
            self._publish(
                SupervisorEvent(
                    kind=EventKind.READINESS,
                    pid=self.pid,
                    phase=self.phase,
                    readiness=event,
                    message=line.strip()[:200],
                )
            )

    def _check_alive(self, phase: SupervisorPhase) -> None:
        code = self._process.poll() if self._process is not None else None
        if code is None or self._stop.is_set():
            return
        self._drain_log()
        self._fail(
            FatalReason.DIED_DURING_STARTUP,
            f"Process died during startup: pid {self.pid} exited with code {code}",
            hint=f"See {self.launch.log_path} for the full server output.",
            expected=phase,
        )

    def _fail(
        self,
        reason: FatalReason,
        message: str,
        *,
        hint: str = "",
        expected: SupervisorPhase,
        with_diagnostics: bool = True,
    ) -> None:
        """Enter STOPPED through an error path and raise.

        If shutdown already moved the machine away from *expected*, the
        failure lost the race and nothing is raised.
        """
        diagnostics = (
            self._reader.tail(self.policy.diagnostic_lines) if with_diagnostics else []
        )
        record = self._machine.try_transition(
            SupervisorPhase.STOPPED, reason.value, expected=expected
        )
        if record is None:
            logger.debug("Fatal %s superseded by shutdown", reason.value)
            return

        self._close_log_handle()
        # After a health timeout the server is left up for inspection; on
        # every other path its leftover workers are torn down.
        if reason is not FatalReason.HEALTH_TIMEOUT:
            self._terminate_child()
        error = SupervisorFatalError(reason, message, diagnostics=diagnostics, hint=hint)
        self._fatal = error
        logger.error("%s", message)
        self._publish(
            SupervisorEvent(
                kind=EventKind.FATAL,
                pid=self.pid,
                phase=self.phase,
                fatal_reason=reason,
                message=message,
            )
        )
        raise error

    def _on_transition(self, record: PhaseTransition) -> None:
        self._publish(
            SupervisorEvent(
                kind=EventKind.PHASE,
                pid=self.pid,
                phase=record.to_phase,
                from_phase=record.from_phase,
                message=record.reason,
            )
        )

    def _publish(self, event: SupervisorEvent) -> None:
        self._dispatcher.publish(event)

    def _close_log_handle(self) -> None:
        if self._log_handle is not None:
            self._log_handle.close()
            self._log_handle = None
