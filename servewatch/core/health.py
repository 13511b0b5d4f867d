"""Health poller — bounded HTTP liveness probes.

Probing is advisory.  ``probe()`` never raises: network errors, timeouts and
non-2xx responses all come back as ``HealthState.UNHEALTHY``.  The poller has
no handle on the child process and never changes its state.
"""

from __future__ import annotations

import logging
import time

import httpx

from servewatch.models.health import HealthState, ProbeResult

logger = logging.getLogger(__name__)


def health_url(host: str, port: int, path: str = "/health") -> str:
    """Build a probe URL; wildcard bind addresses are probed on loopback."""
    if host in ("0.0.0.0", "::", ""):
        host = "127.0.0.1"
    if not path.startswith("/"):
        path = f"/{path}"
    return f"http://{host}:{port}{path}"


class HealthPoller:
    """Issues single GET probes against a health endpoint.

    Parameters
    ----------
    endpoint:
        Full URL of the health endpoint.
    timeout:
        Per-probe timeout in seconds (connect, read and write).
    client:
        Optional pre-built ``httpx.Client`` (tests pass one with a
        ``MockTransport``).  The poller closes only clients it created.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._timeout = timeout
        self._state = HealthState.UNKNOWN
        self._last_result: ProbeResult | None = None
        self._attempts = 0
        self._consecutive_failures = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> HealthState:
        return self._state

    @property
    def last_result(self) -> ProbeResult | None:
        return self._last_result

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def probe(self) -> HealthState:
        """Run one probe and return the resulting state."""
        return self.probe_detailed().state

    def probe_detailed(self) -> ProbeResult:
        """Run one probe and return the full ``ProbeResult``."""
        self._attempts += 1
        status_code: int | None = None
        error: str | None = None
        started = time.monotonic()
        try:
            response = self._client.get(self.endpoint, timeout=self._timeout)
            status_code = response.status_code
            state = (
                HealthState.HEALTHY
                if response.is_success
                else HealthState.UNHEALTHY
            )
        except httpx.TimeoutException:
            state = HealthState.UNHEALTHY
            error = f"timed out after {self._timeout:g}s"
        except httpx.HTTPError as exc:
            state = HealthState.UNHEALTHY
            error = f"{type(exc).__name__}: {exc}"
        latency_ms = (time.monotonic() - started) * 1000.0

        if state == HealthState.HEALTHY:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1

        result = ProbeResult(
            endpoint=self.endpoint,
            state=state,
            attempt=self._attempts,
            status_code=status_code,
            error=error,
            latency_ms=latency_ms,
        )
        self._state = state
        self._last_result = result
        logger.debug(
            "Probe #%d %s -> %s (%s)",
            result.attempt,
            self.endpoint,
            state.value,
            result.detail,
        )
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HealthPoller:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
