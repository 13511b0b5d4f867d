"""Supervisor core: log tailing, readiness detection, health probing,
the phase machine, the process supervisor, and the shutdown coordinator."""
