"""Shared test fixtures for servewatch."""

from __future__ import annotations

import socket
import sys
import textwrap
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest

from servewatch.core.health import HealthPoller
from servewatch.core.supervisor import ProcessSupervisor
from servewatch.models.events import EventKind, SupervisorEvent
from servewatch.models.launch import LaunchSpec, SupervisorPolicy
from servewatch.routing.dispatcher import SinkDispatcher

# ---------------------------------------------------------------------------
# Child process scripts
# ---------------------------------------------------------------------------

READY_SCRIPT = """
    import time
    print("INFO Loading weights took 12s", flush=True)
    print("INFO Model loading took 30s", flush=True)
    print("INFO: Uvicorn running on 0.0.0.0:8000", flush=True)
    time.sleep(60)
"""

SILENT_SCRIPT = """
    import time
    time.sleep(60)
"""

DYING_SCRIPT = """
    import sys
    print("RuntimeError: CUDA out of memory", flush=True)
    sys.exit(3)
"""


def python_command(script: str) -> list[str]:
    """argv running *script* in a fresh, unbuffered interpreter."""
    return [sys.executable, "-u", "-c", textwrap.dedent(script)]


def free_port() -> int:
    """A loopback TCP port nothing is listening on right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def wait_until(predicate: Callable[[], bool], timeout: float = 10.0) -> bool:
    """Poll *predicate* until it holds or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def process_gone(pid: int) -> bool:
    """Whether *pid* has exited.  An unreaped zombie counts as exited."""
    try:
        stat = Path(f"/proc/{pid}/stat").read_text()
    except (FileNotFoundError, ProcessLookupError):
        return True
    return stat.rsplit(")", 1)[1].split()[0] == "Z"


requires_proc = pytest.mark.skipif(
    not Path("/proc/self/stat").exists(), reason="needs /proc to inspect process state"
)


# ---------------------------------------------------------------------------
# Fake health endpoint
# ---------------------------------------------------------------------------


class ScriptedHealth:
    """httpx MockTransport handler replaying a script of responses.

    Each entry is an HTTP status code, ``"refused"`` (connection error) or
    ``"timeout"``.  The last entry repeats forever.
    """

    def __init__(self, script: list[int | str]) -> None:
        self._script = list(script)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        step = self._script[min(self.calls, len(self._script)) - 1]
        if step == "refused":
            raise httpx.ConnectError("connection refused", request=request)
        if step == "timeout":
            raise httpx.ReadTimeout("read timed out", request=request)
        return httpx.Response(int(step), json={"status": step})

    def poller(self, endpoint: str = "http://127.0.0.1:8000/health") -> HealthPoller:
        client = httpx.Client(transport=httpx.MockTransport(self))
        return HealthPoller(endpoint, timeout=1.0, client=client)


class RecordingSink:
    """A sink that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[SupervisorEvent] = []

    @property
    def sink_name(self) -> str:
        return "recording"

    def accept(self, event: SupervisorEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: EventKind) -> list[SupervisorEvent]:
        return [e for e in self.events if e.kind == kind]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    """Log sink location inside a not-yet-existing directory."""
    return tmp_path / "logs" / "server.log"


@pytest.fixture
def fast_policy() -> SupervisorPolicy:
    """Policy with sub-second intervals so lifecycle tests finish quickly."""
    return SupervisorPolicy(
        log_wait_timeout=3.0,
        health_wait_timeout=3.0,
        startup_poll_interval=0.05,
        steady_poll_interval=0.05,
        shutdown_grace_period=2.0,
        diagnostic_lines=10,
        orphan_sweep=False,
    )


@pytest.fixture
def unused_port() -> int:
    return free_port()


@pytest.fixture
def recorder() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_supervisor(
    log_path: Path,
    fast_policy: SupervisorPolicy,
    recorder: RecordingSink,
) -> Iterator[Callable[..., ProcessSupervisor]]:
    """Factory fixture: build a ProcessSupervisor around a Python child.

    Every child spawned through the factory is killed at teardown, including
    children deliberately left running after a health timeout.
    """
    created: list[ProcessSupervisor] = []

    def _factory(
        script: str = READY_SCRIPT,
        health: ScriptedHealth | None = None,
        argv: list[str] | None = None,
        env: dict[str, str] | None = None,
        **policy_overrides: Any,
    ) -> ProcessSupervisor:
        health = health or ScriptedHealth([200])
        policy = fast_policy.model_copy(update=policy_overrides)
        dispatcher = SinkDispatcher()
        dispatcher.register_sink(recorder)
        supervisor = ProcessSupervisor(
            LaunchSpec(
                argv=argv or python_command(script),
                env=env or {},
                log_path=log_path,
            ),
            health.poller(),
            policy,
            dispatcher=dispatcher,
        )
        created.append(supervisor)
        return supervisor

    yield _factory

    for supervisor in created:
        supervisor.shutdown()
        proc = supervisor._process
        if proc is not None and proc.poll() is None:
            proc.kill()
            proc.wait(timeout=5)
        supervisor.poller.close()
