"""
Health file writer for the relay pipeline.

Writes a JSON health file at a configurable path with:
- last_sample_ts: ISO timestamp of the most recently processed sample.
- last_publish_ts: ISO timestamp of the most recent successful publish.
- published_count: Samples that passed the change gate.
- suppressed_count: Samples the change gate dropped.
- alert_active: Whether the low-battery alert is currently active.

The file is overwritten on every state change, providing a simple liveness
signal that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-15: Track gate counters and alert flag instead of spool count
- 2026-10-12: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes relay health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_sample_ts: str | None = None
        self._last_publish_ts: str | None = None
        self._published_count: int = 0
        self._suppressed_count: int = 0
        self._alert_active: bool = False

    def record_sample(self, *, published: bool, alert_active: bool) -> None:
        """Record one processed sample and write health file.

        Args:
            published: Whether the change gate let the sample through.
            alert_active: Alert state after the sample.
        """
        self._last_sample_ts = datetime.now(tz=UTC).isoformat()
        if published:
            self._published_count += 1
        else:
            self._suppressed_count += 1
        self._alert_active = alert_active
        self._write()

    def record_publish(self) -> None:
        """Record a successful publish and write health file."""
        self._last_publish_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_sample_ts": self._last_sample_ts,
            "last_publish_ts": self._last_publish_ts,
            "published_count": self._published_count,
            "suppressed_count": self._suppressed_count,
            "alert_active": self._alert_active,
        }
        self.path.write_text(json.dumps(data))
