"""Unit tests for ShutdownCoordinator — the one-shot shutdown guard."""

from __future__ import annotations

import signal
import threading

from servewatch.core.coordinator import ShutdownCoordinator


class _Counter:
    def __init__(self) -> None:
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self) -> None:
        with self._lock:
            self.calls += 1


class TestTrigger:
    def test_first_trigger_wins(self):
        counter = _Counter()
        coordinator = ShutdownCoordinator(counter)
        assert coordinator.trigger("signal SIGINT") is True
        assert coordinator.trigger("interpreter exit") is False
        assert counter.calls == 1
        assert coordinator.fired
        assert coordinator.reason == "signal SIGINT"

    def test_not_fired_initially(self):
        coordinator = ShutdownCoordinator(_Counter())
        assert not coordinator.fired
        assert coordinator.reason is None

    def test_concurrent_triggers_run_callback_once(self):
        counter = _Counter()
        coordinator = ShutdownCoordinator(counter)
        barrier = threading.Barrier(8)
        wins: list[bool] = []

        def fire(n: int) -> None:
            barrier.wait()
            wins.append(coordinator.trigger(f"thread {n}"))

        threads = [threading.Thread(target=fire, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert counter.calls == 1
        assert wins.count(True) == 1


class TestInstall:
    def test_signal_routes_to_callback(self):
        counter = _Counter()
        coordinator = ShutdownCoordinator(counter, signals=(signal.SIGTERM,))
        coordinator.install()
        try:
            signal.raise_signal(signal.SIGTERM)
            signal.raise_signal(signal.SIGTERM)
        finally:
            coordinator.uninstall()
        assert coordinator.wait(5)
        assert counter.calls == 1
        assert coordinator.reason == "signal SIGTERM"

    def test_signal_callback_runs_on_worker_thread(self):
        ran_on: list[threading.Thread] = []
        coordinator = ShutdownCoordinator(
            lambda: ran_on.append(threading.current_thread()), signals=(signal.SIGTERM,)
        )
        coordinator.install()
        try:
            signal.raise_signal(signal.SIGTERM)
        finally:
            coordinator.uninstall()
        assert coordinator.wait(5) is True
        assert len(ran_on) == 1
        assert ran_on[0] is not threading.main_thread()

    def test_wait_without_signal_returns_immediately(self):
        coordinator = ShutdownCoordinator(_Counter())
        assert coordinator.wait(0) is True
        coordinator.trigger("normal exit")
        assert coordinator.wait(0) is True

    def test_uninstall_restores_previous_handler(self):
        def previous(signum, frame):  # pragma: no cover - never invoked
            pass

        original = signal.signal(signal.SIGTERM, previous)
        try:
            coordinator = ShutdownCoordinator(_Counter(), signals=(signal.SIGTERM,))
            coordinator.install()
            assert signal.getsignal(signal.SIGTERM) == coordinator._handle_signal
            coordinator.uninstall()
            assert signal.getsignal(signal.SIGTERM) is previous
        finally:
            signal.signal(signal.SIGTERM, original)

    def test_install_is_idempotent(self):
        coordinator = ShutdownCoordinator(_Counter(), signals=(signal.SIGTERM,))
        coordinator.install()
        coordinator.install()
        coordinator.uninstall()
        coordinator.uninstall()

    def test_off_main_thread_skips_signal_handlers(self):
        before = signal.getsignal(signal.SIGTERM)
        coordinator = ShutdownCoordinator(_Counter(), signals=(signal.SIGTERM,))
        worker = threading.Thread(target=coordinator.install)
        worker.start()
        worker.join()
        try:
            assert signal.getsignal(signal.SIGTERM) == before
        finally:
            coordinator.uninstall()

    def test_exit_hook_triggers(self):
        counter = _Counter()
        coordinator = ShutdownCoordinator(counter)
        coordinator._handle_exit()
        assert coordinator.reason == "interpreter exit"
        assert counter.calls == 1


class TestContextManager:
    def test_leaving_block_triggers_shutdown(self):
        counter = _Counter()
        with ShutdownCoordinator(counter) as coordinator:
            assert counter.calls == 0
        assert counter.calls == 1
        assert coordinator.reason == "normal exit"

    def test_signal_inside_block_then_exit_runs_once(self):
        counter = _Counter()
        with ShutdownCoordinator(counter, signals=(signal.SIGTERM,)) as coordinator:
            signal.raise_signal(signal.SIGTERM)
        assert counter.calls == 1
        assert coordinator.reason == "signal SIGTERM"

    def test_block_exception_still_shuts_down(self):
        counter = _Counter()
        try:
            with ShutdownCoordinator(counter):
                raise KeyError("boom")
        except KeyError:
            pass
        assert counter.calls == 1
