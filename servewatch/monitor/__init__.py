"""Status monitor — read-only projection and rendering of a supervisor.

Modules
-------
status
    ``StatusSnapshot``: a frozen, point-in-time view produced by
    ``ProcessSupervisor.snapshot()``.
renderer
    ``StatusRenderer`` turns snapshots and outcomes into Rich renderables.
"""
