"""servewatch: launch and supervise a long-running inference server.

Starts the server as a child process, follows its log for readiness
milestones, waits for its HTTP health endpoint, keeps probing it while it
runs, and guarantees the child is terminated on every exit path:
  - Data-driven readiness rules over the server's log stream
  - Soft log-wait timeout, hard health-wait timeout
  - Distinct exit codes per fatal reason
  - One-shot shutdown shared by SIGINT, SIGTERM and normal exit
"""

__version__ = "0.1.0"
__description__ = "Process bootstrap and readiness supervisor for inference servers"

from servewatch.core.coordinator import ShutdownCoordinator
from servewatch.core.supervisor import ProcessSupervisor, SupervisorFatalError
from servewatch.cli.app import app as cli

__all__ = [
    "ProcessSupervisor",
    "ShutdownCoordinator",
    "SupervisorFatalError",
    "cli",
    "__version__",
]
