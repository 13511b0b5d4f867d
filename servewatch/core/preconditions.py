"""Launch precondition checks — run once before the state machine starts.

A missing model artifact directory, an unresolvable executable, or an
unusable log directory is reported here, before anything is spawned.  These
failures are not supervisor error kinds: the supervisor never sees them.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from servewatch.models.launch import LaunchSpec

logger = logging.getLogger(__name__)


class PreconditionError(RuntimeError):
    """Raised when one or more launch preconditions are violated.

    The process should exit with ``ExitCode.PRECONDITION_FAILED``.
    """

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


class PreconditionCheck(BaseModel):
    """Result of one precondition check, for display."""

    model_config = ConfigDict(frozen=True)

    name: str
    ok: bool
    detail: str


def resolve_executable(executable: str) -> str | None:
    """Resolve *executable* the way the OS will when spawning it."""
    if os.sep in executable or (os.altsep and os.altsep in executable):
        path = Path(executable)
        return str(path) if path.is_file() and os.access(path, os.X_OK) else None
    return shutil.which(executable)


def _check_model_path(model_path: Path | None) -> PreconditionCheck:
    if model_path is None:
        return PreconditionCheck(name="Model artifacts", ok=True, detail="not required")
    if model_path.is_dir():
        entries = sum(1 for _ in model_path.iterdir())
        return PreconditionCheck(
            name="Model artifacts", ok=True, detail=f"{model_path} ({entries} entries)"
        )
    return PreconditionCheck(
        name="Model artifacts", ok=False, detail=f"{model_path} does not exist"
    )


def _check_executable(executable: str) -> PreconditionCheck:
    resolved = resolve_executable(executable)
    if resolved:
        return PreconditionCheck(name="Executable", ok=True, detail=resolved)
    return PreconditionCheck(
        name="Executable", ok=False, detail=f"{executable!r} not found on PATH"
    )


def _check_log_dir(log_path: Path) -> PreconditionCheck:
    log_dir = log_path.parent
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return PreconditionCheck(
            name="Log directory", ok=False, detail=f"{log_dir}: {exc.strerror or exc}"
        )
    if not os.access(log_dir, os.W_OK):
        return PreconditionCheck(
            name="Log directory", ok=False, detail=f"{log_dir} is not writable"
        )
    return PreconditionCheck(name="Log directory", ok=True, detail=str(log_dir))


def run_precondition_checks(
    spec: LaunchSpec, model_path: Path | None = None
) -> list[PreconditionCheck]:
    """Run every check and return the results, passing or not."""
    return [
        _check_model_path(model_path),
        _check_executable(spec.executable),
        _check_log_dir(spec.log_path),
    ]


def enforce_preconditions(spec: LaunchSpec, model_path: Path | None = None) -> None:
    """Validate all launch preconditions.

    Parameters
    ----------
    spec:
        The LaunchSpec about to be handed to the supervisor.
    model_path:
        Model artifact directory that must exist, or ``None`` when the
        command does not depend on one.

    Raises
    ------
    PreconditionError
        Listing every violated precondition.
    """
    violations = [
        f"{check.name}: {check.detail}"
        for check in run_precondition_checks(spec, model_path)
        if not check.ok
    ]
    if violations:
        for violation in violations:
            logger.error("Precondition failed: %s", violation)
        raise PreconditionError(violations)
