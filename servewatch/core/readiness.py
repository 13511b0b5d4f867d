"""Readiness detector — classifies log lines against the rule table."""

from __future__ import annotations

from servewatch.models.readiness import (
    DEFAULT_READINESS_RULES,
    TERMINAL_READINESS_EVENT,
    ReadinessEvent,
    ReadinessRule,
)


class ReadinessDetector:
    """Matches log lines against an ordered list of ``ReadinessRule``.

    Each event is reported at most once per process lifetime: re-detection
    of an event already seen is harmless and returns ``None``.

    Parameters
    ----------
    rules:
        Ordered rule table.  Defaults to ``DEFAULT_READINESS_RULES``.
    """

    def __init__(self, rules: list[ReadinessRule] | None = None) -> None:
        self._rules = list(rules if rules is not None else DEFAULT_READINESS_RULES)
        self._seen: list[ReadinessEvent] = []

    @property
    def rules(self) -> list[ReadinessRule]:
        return list(self._rules)

    @property
    def seen(self) -> list[ReadinessEvent]:
        """Events observed so far, in first-seen order."""
        return list(self._seen)

    @property
    def server_started(self) -> bool:
        return TERMINAL_READINESS_EVENT in self._seen

    def classify(self, line: str) -> ReadinessEvent | None:
        """Return the event of the first rule matching *line*, if any."""
        for rule in self._rules:
            if rule.matches(line):
                return rule.event
        return None

    def observe(self, line: str) -> ReadinessEvent | None:
        """Classify *line* and return its event only if it is new."""
        event = self.classify(line)
        if event is None or event in self._seen:
            return None
        self._seen.append(event)
        return event

    def reset(self) -> None:
        """Forget seen events (new child process)."""
        self._seen.clear()
