"""Adversarial tests — concurrent and repeated termination triggers.

Shutdown can be requested from a signal handler, another thread, or the exit
hook, at any point in the lifecycle.  Whatever the interleaving, the
termination sequence runs at most once and the supervisor ends in STOPPED.
"""

from __future__ import annotations

import os
import signal
import threading

import pytest

from conftest import SILENT_SCRIPT, ScriptedHealth, wait_until
from servewatch.core.coordinator import ShutdownCoordinator
from servewatch.models.outcome import ExitCode
from servewatch.models.phases import PhaseTransition, SupervisorPhase

DELAYED_DEATH_SCRIPT = """
    import sys, time
    print("INFO: Uvicorn running on 0.0.0.0:8000", flush=True)
    time.sleep(0.2)
    sys.exit(7)
"""


class TestConcurrentShutdown:
    def test_many_threads_one_termination(self, make_supervisor):
        sup = make_supervisor()
        sup.start()
        sup.wait_for_log_readiness()
        sup.wait_for_healthy()
        barrier = threading.Barrier(8)
        results: list[bool] = []

        def request() -> None:
            barrier.wait()
            results.append(sup.shutdown())

        threads = [threading.Thread(target=request) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)
        assert results.count(True) == 1
        assert sup.termination_count == 1
        assert sup.phase == SupervisorPhase.STOPPED
        assert not sup.is_alive()

    def test_coordinator_and_direct_calls(self, make_supervisor):
        sup = make_supervisor()
        coordinator = ShutdownCoordinator(sup.shutdown)
        sup.start()
        coordinator.trigger("signal SIGTERM")
        coordinator.trigger("interpreter exit")
        sup.shutdown()
        assert sup.termination_count == 1
        assert sup.phase == SupervisorPhase.STOPPED

    @pytest.mark.parametrize(
        "phase",
        [SupervisorPhase.AWAITING_LOG_SIGNAL, SupervisorPhase.AWAITING_HEALTHY],
    )
    def test_shutdown_during_startup_waits(self, make_supervisor, phase):
        sup = make_supervisor(
            script=SILENT_SCRIPT,
            health=ScriptedHealth(["refused"]),
            log_wait_timeout=0.3,
            health_wait_timeout=30.0,
        )
        box: dict = {}
        thread = threading.Thread(target=lambda: box.setdefault("outcome", sup.run()))
        thread.start()
        assert wait_until(lambda: sup.phase == phase)
        sup.shutdown()
        thread.join(10)
        assert not thread.is_alive()
        assert box["outcome"].exit_code == ExitCode.INTERRUPTED
        assert sup.history[-1].from_phase == SupervisorPhase.SHUTTING_DOWN


class TestShutdownVersusFatal:
    def test_child_death_racing_shutdown_ends_stopped(self, make_supervisor):
        """A child dying while shutdown runs yields exactly one terminal story."""
        sup = make_supervisor(script=DELAYED_DEATH_SCRIPT, health=ScriptedHealth(["refused"]))
        box: dict = {}
        thread = threading.Thread(target=lambda: box.setdefault("outcome", sup.run()))
        thread.start()
        assert wait_until(lambda: sup.phase == SupervisorPhase.AWAITING_HEALTHY)
        sup.shutdown()
        thread.join(10)
        outcome = box["outcome"]
        assert sup.phase == SupervisorPhase.STOPPED
        assert outcome.exit_code in (ExitCode.INTERRUPTED, ExitCode.DIED_DURING_STARTUP)
        assert [t.to_phase for t in sup.history].count(SupervisorPhase.STOPPED) == 1

    def test_signal_after_fatal_is_noop(self, make_supervisor):
        sup = make_supervisor(argv=["/nonexistent/servewatch-missing-binary"])
        with ShutdownCoordinator(sup.shutdown, signals=(signal.SIGTERM,)):
            outcome = sup.run()
            os.kill(os.getpid(), signal.SIGTERM)
        assert outcome.exit_code == ExitCode.SPAWN_FAILED
        assert sup.termination_count == 0


class _StopCheckRacingShutdown(threading.Event):
    """Stop event whose first ``is_set`` lets a shutdown complete before answering."""

    def __init__(self, on_first_check) -> None:
        super().__init__()
        self._on_first_check = on_first_check

    def is_set(self) -> bool:
        answer = super().is_set()
        hook, self._on_first_check = self._on_first_check, None
        if hook is not None:
            hook()
        return answer


class TestShutdownInsideTransitions:
    def test_shutdown_while_running_record_is_built(self, make_supervisor, monkeypatch):
        """A shutdown landing mid-transition wins; RUNNING is never entered."""
        sup = make_supervisor()
        sup.start()
        sup.wait_for_log_readiness()
        interrupted: list[bool] = []

        def building(**fields):
            if fields["to_phase"] == SupervisorPhase.RUNNING and not interrupted:
                interrupted.append(sup.shutdown())
            return PhaseTransition(**fields)

        monkeypatch.setattr("servewatch.core.phase_machine.PhaseTransition", building)
        assert sup.wait_for_healthy() is False
        assert interrupted == [True]
        assert sup.phase == SupervisorPhase.STOPPED
        assert SupervisorPhase.RUNNING not in [t.to_phase for t in sup.history]
        assert not sup.is_alive()

    def test_shutdown_between_phase_read_and_stop_check(self, make_supervisor):
        sup = make_supervisor(health=ScriptedHealth(["refused"]))
        sup.start()
        sup.wait_for_log_readiness()
        sup._stop = _StopCheckRacingShutdown(sup.shutdown)
        assert sup.wait_for_healthy() is False
        assert sup.phase == SupervisorPhase.STOPPED
        assert sup.termination_count == 1

    def test_signal_runs_shutdown_off_main_thread(self, make_supervisor):
        sup = make_supervisor(health=ScriptedHealth(["refused"]))
        threads: list[str] = []

        def shutdown() -> None:
            threads.append(threading.current_thread().name)
            sup.shutdown()

        with ShutdownCoordinator(shutdown, signals=(signal.SIGTERM,)) as coordinator:
            sup.start()
            sup.wait_for_log_readiness()
            signal.raise_signal(signal.SIGTERM)
            assert coordinator.wait(10)
        assert threads == ["servewatch-shutdown"]
        assert sup.phase == SupervisorPhase.STOPPED
        assert sup.termination_count == 1
