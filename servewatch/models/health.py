"""Health probe models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class HealthState(str, Enum):
    """Result of the most recent liveness probe."""

    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class ProbeResult(BaseModel):
    """Outcome of a single HTTP health probe.

    Failures are data, not exceptions: ``error`` carries the network error
    text and ``status_code`` the HTTP status when a response arrived.
    """

    model_config = ConfigDict(frozen=True)

    endpoint: str
    state: HealthState
    attempt: int
    status_code: int | None = None
    error: str | None = None
    latency_ms: float = 0.0
    probed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def healthy(self) -> bool:
        return self.state == HealthState.HEALTHY

    @property
    def detail(self) -> str:
        """Short human-readable description of the probe outcome."""
        if self.error:
            return self.error
        if self.status_code is not None:
            return f"HTTP {self.status_code}"
        return "no response"
