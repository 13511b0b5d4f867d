"""Tests for the ReadinessDetector and the readiness rule table."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from servewatch.core.readiness import ReadinessDetector
from servewatch.models.readiness import (
    DEFAULT_READINESS_RULES,
    ReadinessEvent,
    ReadinessRule,
)


class TestClassify:
    @pytest.mark.parametrize(
        ("line", "event"),
        [
            ("INFO:     Uvicorn running on http://0.0.0.0:8000", ReadinessEvent.SERVER_STARTED),
            ("INFO:     Application startup complete.", ReadinessEvent.SERVER_STARTED),
            ("INFO:     Started server process [4242]", ReadinessEvent.SERVER_STARTED),
            ("Loading weights took 12.31 seconds", ReadinessEvent.WEIGHTS_LOADED),
            ("Model loading took 30.1 GiB and 41.2 seconds", ReadinessEvent.MODEL_LOADED),
            ("Compiling a graph for dynamic shape takes 9.8 s", ReadinessEvent.COMPILATION_IN_PROGRESS),
        ],
    )
    def test_default_table(self, line: str, event: ReadinessEvent):
        assert ReadinessDetector().classify(line) == event

    def test_unrelated_line(self):
        assert ReadinessDetector().classify("GET /v1/models 200") is None

    def test_first_rule_wins(self):
        detector = ReadinessDetector()
        line = "Model loading took 3s; Uvicorn running on 0.0.0.0:8000"
        assert detector.classify(line) == ReadinessEvent.SERVER_STARTED

    def test_table_covers_every_event(self):
        covered = {rule.event for rule in DEFAULT_READINESS_RULES}
        assert covered == set(ReadinessEvent)


class TestObserve:
    def test_event_reported_once(self):
        detector = ReadinessDetector()
        assert detector.observe("Uvicorn running on x") == ReadinessEvent.SERVER_STARTED
        assert detector.observe("Uvicorn running on x") is None
        assert detector.observe("Application startup complete.") is None
        assert detector.seen == [ReadinessEvent.SERVER_STARTED]

    def test_progress_events_do_not_start_server(self):
        detector = ReadinessDetector()
        detector.observe("Loading weights took 1s")
        detector.observe("Model loading took 2s")
        detector.observe("Compiling a graph for dynamic shape")
        assert not detector.server_started
        assert len(detector.seen) == 3

    def test_reset_forgets_events(self):
        detector = ReadinessDetector()
        detector.observe("Started server process [1]")
        detector.reset()
        assert detector.seen == []
        assert detector.observe("Started server process [2]") == ReadinessEvent.SERVER_STARTED


class TestCustomRules:
    def test_new_signal_without_touching_control_flow(self):
        rules = [
            *DEFAULT_READINESS_RULES,
            ReadinessRule(pattern="Server is ready", event=ReadinessEvent.SERVER_STARTED),
        ]
        detector = ReadinessDetector(rules)
        detector.observe("llama.cpp: Server is ready")
        assert detector.server_started

    def test_empty_table_matches_nothing(self):
        assert ReadinessDetector([]).classify("Uvicorn running on") is None

    def test_blank_pattern_rejected(self):
        with pytest.raises(ValidationError):
            ReadinessRule(pattern="  ", event=ReadinessEvent.MODEL_LOADED)
