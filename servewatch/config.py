"""Supervisor configuration — env-driven.

Centralized settings using pydantic-settings.  Reads from a .env file and
SERVEWATCH_* environment variables; CLI options override individual fields.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from servewatch.core.health import health_url as build_health_url
from servewatch.models.launch import LaunchSpec, SupervisorPolicy


class ServeSettings(BaseSettings):
    """Supervisor settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export SERVEWATCH_PORT=9000
        export SERVEWATCH_HEALTH_WAIT_TIMEOUT=120
        export SERVEWATCH_MODEL_PATH=/models/DotsOCR

    Or via .env file::

        SERVEWATCH_LOG_LEVEL=DEBUG
        SERVEWATCH_JOURNAL_PATH=logs/events.jsonl
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SERVEWATCH_",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=("settings_",),
    )

    log_level: str = "INFO"

    # Served model
    model_path: Path = Path("/workspace/dots-ocr/weights/DotsOCR")
    executable: str = "vllm"
    served_model_name: str = "dotsocr-model"
    tensor_parallel_size: int = Field(default=1, ge=1)
    gpu_memory_utilization: float = Field(default=0.95, gt=0, le=1)
    max_model_len: int = Field(default=40000, ge=1)
    chat_template_content_format: str = "string"
    trust_remote_code: bool = True

    # Network
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    health_path: str = "/health"

    # Files
    log_path: Path = Path("logs/server.log")
    journal_path: Path | None = None

    # Child environment
    pythonpath_prepend: list[Path] = [Path("/workspace/dots-ocr/weights")]
    extra_env: dict[str, str] = {}

    # Timing policy
    log_wait_timeout: float = Field(default=600.0, gt=0)
    health_wait_timeout: float = Field(default=60.0, gt=0)
    startup_poll_interval: float = Field(default=5.0, gt=0)
    steady_poll_interval: float = Field(default=10.0, gt=0)
    probe_timeout: float = Field(default=5.0, gt=0)
    shutdown_grace_period: float = Field(default=10.0, gt=0)
    diagnostic_lines: int = Field(default=50, ge=0)

    # Shutdown
    orphan_sweep: bool = True
    # Extended regex handed to `pgrep -f` as is.  Unset: the first three argv
    # words, escaped to match literally.
    orphan_pattern: str | None = None

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def health_url(self) -> str:
        """Health endpoint URL; wildcard bind addresses are probed on loopback."""
        return build_health_url(self.host, self.port, self.health_path)

    def build_argv(self) -> list[str]:
        """Compose the default ``<executable> serve <model>`` command line."""
        argv = [
            self.executable,
            "serve",
            str(self.model_path),
            "--tensor-parallel-size",
            str(self.tensor_parallel_size),
            "--gpu-memory-utilization",
            str(self.gpu_memory_utilization),
            "--chat-template-content-format",
            self.chat_template_content_format,
            "--served-model-name",
            self.served_model_name,
        ]
        if self.trust_remote_code:
            argv.append("--trust-remote-code")
        argv += [
            "--host",
            self.host,
            "--port",
            str(self.port),
            "--max-model-len",
            str(self.max_model_len),
        ]
        return argv

    def build_env(self, base: dict[str, str] | None = None) -> dict[str, str]:
        """Environment overrides for the child process.

        ``HF_MODEL_PATH`` points at the model directory and the configured
        directories are prepended to ``PYTHONPATH`` ahead of whatever *base*
        (the parent environment by default) already carries.
        """
        base = os.environ if base is None else base
        env = {"HF_MODEL_PATH": str(self.model_path)}
        if self.pythonpath_prepend:
            parts = [str(p) for p in self.pythonpath_prepend]
            existing = base.get("PYTHONPATH", "")
            if existing:
                parts.append(existing)
            env["PYTHONPATH"] = os.pathsep.join(parts)
        env.update(self.extra_env)
        return env

    def build_launch_spec(self, command: list[str] | None = None) -> LaunchSpec:
        """Build the LaunchSpec; *command* replaces the composed argv verbatim."""
        return LaunchSpec(
            argv=list(command) if command else self.build_argv(),
            env=self.build_env(),
            log_path=self.log_path,
        )

    def policy(self) -> SupervisorPolicy:
        """Timing and shutdown policy for the ProcessSupervisor."""
        return SupervisorPolicy(
            log_wait_timeout=self.log_wait_timeout,
            health_wait_timeout=self.health_wait_timeout,
            startup_poll_interval=self.startup_poll_interval,
            steady_poll_interval=self.steady_poll_interval,
            shutdown_grace_period=self.shutdown_grace_period,
            diagnostic_lines=self.diagnostic_lines,
            orphan_sweep=self.orphan_sweep,
            orphan_pattern=self.orphan_pattern,
        )


# Module-level singleton: import as `from servewatch.config import settings`
settings = ServeSettings()
