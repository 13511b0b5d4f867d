"""Journal file sink — appends supervisor events to a JSON Lines file.

Layout: one JSON object per line, in dispatch order.  The journal survives
the supervisor and gives operators a timeline of phases, readiness
milestones and probe results.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from servewatch.models.events import SupervisorEvent

logger = logging.getLogger(__name__)


class JournalFileSink:
    """Appends events to a JSONL journal.

    Parameters
    ----------
    path:
        Journal file.  Parent directories are created on construction.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def sink_name(self) -> str:
        return "journal_file"

    def accept(self, event: SupervisorEvent) -> None:
        line = event.model_dump_json(exclude_none=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
        logger.debug("JournalFileSink: wrote %s to %s", event.event_id, self.path)

    def read_events(self) -> list[dict]:
        """Read back every journaled event."""
        if not self.path.exists():
            return []
        with self.path.open(encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]
