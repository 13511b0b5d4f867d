"""Incremental reader over an append-only log sink.

The reader keeps a byte cursor into the file and returns only *complete*
lines appended since the previous poll.  A trailing fragment without a
newline is held back until the rest of the line arrives.  A sink that does
not exist yet simply has no new lines.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

# Upper bound on bytes consumed per poll so a single poll never stalls.
_MAX_READ_BYTES = 4 * 1024 * 1024


class LogReadError(RuntimeError):
    """Raised when the log sink exists but cannot be read.

    Transient: the cursor is left untouched and the next poll retries.
    """


class LogTailReader:
    """Tails a log file by byte offset.

    Parameters
    ----------
    path:
        The log sink the supervised process writes to.
    encoding:
        Text encoding of the sink.  Undecodable bytes are replaced.
    """

    def __init__(self, path: Path | str, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self._encoding = encoding
        self._origin = 0
        self._cursor = 0
        self._partial = b""

    @property
    def cursor(self) -> int:
        """Byte offset of everything consumed so far (complete or partial)."""
        return self._cursor

    def reset(self, offset: int = 0) -> None:
        """Restart tailing at *offset*.  Only for a new child process.

        The supervisor passes the sink's current size so output left over
        from an earlier process is neither re-classified nor reported.
        """
        self._origin = offset
        self._cursor = offset
        self._partial = b""

    def reset_to_end(self) -> None:
        """Restart tailing at the current end of the sink (0 if missing)."""
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            size = 0
        except OSError as exc:
            raise LogReadError(f"Cannot stat log sink {self.path}: {exc}") from exc
        self.reset(size)

    def poll(self) -> list[str]:
        """Return the complete lines appended since the last poll.

        Raises
        ------
        LogReadError
            If the sink exists but reading it fails.
        """
        try:
            with self.path.open("rb") as fh:
                fh.seek(self._cursor)
                chunk = fh.read(_MAX_READ_BYTES)
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise LogReadError(f"Cannot read log sink {self.path}: {exc}") from exc

        if not chunk:
            return []

        self._cursor += len(chunk)
        data = self._partial + chunk
        *complete, self._partial = data.split(b"\n")
        return [self._decode(raw) for raw in complete]

    def iter_lines(self) -> Iterator[str]:
        """Lazily yield the lines of one poll."""
        yield from self.poll()

    def tail(self, n: int) -> list[str]:
        """Return the last *n* lines written since the last reset.

        Independent of the cursor, so lines already polled are included.
        Missing or unreadable sinks yield ``[]``.
        """
        if n <= 0:
            return []
        try:
            with self.path.open("rb") as fh:
                fh.seek(self._origin)
                last = deque(fh, maxlen=n)
        except OSError as exc:
            logger.debug("tail(%d) on %s failed: %s", n, self.path, exc)
            return []
        return [self._decode(raw.rstrip(b"\n")) for raw in last]

    def _decode(self, raw: bytes) -> str:
        return raw.decode(self._encoding, errors="replace").rstrip("\r")
