"""
Health file writer for the Helios daemon.

Writes a JSON health file at a configurable path with three fields:
- last_poll_ts: ISO timestamp of the most recent poll attempt.
- last_snapshot_ts: ISO timestamp of the most recent applied snapshot.
- consecutive_failures: Poll failures since the last applied snapshot.

The file is replaced atomically on every state change (written to a sibling
temp file, then renamed over the target), so a reader never sees a partial
document.  It is a simple liveness signal that Docker HEALTHCHECK or
monitoring can inspect.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Replace the file atomically via temp file and rename

TODO:
- None
"""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes daemon health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_poll_ts: str | None = None
        self._last_snapshot_ts: str | None = None
        self._consecutive_failures: int = 0

    def record_poll(self) -> None:
        """Record a poll attempt and write health file."""
        self._last_poll_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def record_snapshot(self) -> None:
        """Record an applied snapshot, reset the failure count, write file."""
        self._last_snapshot_ts = datetime.now(tz=UTC).isoformat()
        self._consecutive_failures = 0
        self._write()

    def record_failure(self) -> None:
        """Count a failed or discarded poll and write health file."""
        self._consecutive_failures += 1
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_poll_ts": self._last_poll_ts,
            "last_snapshot_ts": self._last_snapshot_ts,
            "consecutive_failures": self._consecutive_failures,
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(data))
        os.replace(tmp_path, self.path)
