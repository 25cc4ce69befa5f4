"""
Last-known battery state for query endpoints.

The pipeline loop is the only writer. Each update builds a new immutable
Reading and swaps the reference in one assignment, so a concurrent reader
gets either the old reading or the new one, never a mix of fields from
both.

Nothing is persisted: a restart starts with no reading.

CHANGELOG:
- 2026-10-15: Track server-side received_at for staleness checks
- 2026-10-14: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from relay.src.models import BatteryState


@dataclass(frozen=True, slots=True)
class Reading:
    """A BatteryState with the sample timestamp and the local receive time."""

    state: BatteryState
    timestamp: datetime
    received_at: datetime


class LastStateStore:
    """Single-writer holder of the most recent Reading."""

    def __init__(self) -> None:
        self._reading: Reading | None = None
        self._samples_received: int = 0

    @property
    def samples_received(self) -> int:
        """Number of samples processed by the pipeline since startup."""
        return self._samples_received

    def update(
        self,
        state: BatteryState,
        timestamp: datetime,
        received_at: datetime | None = None,
    ) -> Reading:
        """Replace the current reading and return the new one."""
        reading = Reading(
            state=state,
            timestamp=timestamp,
            received_at=received_at or datetime.now(tz=UTC),
        )
        self._reading = reading
        self._samples_received += 1
        return reading

    def snapshot(self) -> Reading | None:
        """Return the current reading, or None before the first sample."""
        return self._reading

    def is_stale(self, now: datetime, stale_after_s: float) -> bool:
        """True when nothing was received within *stale_after_s* of *now*.

        Always True before the first sample. Uses the local receive time,
        not the device timestamp, so a skewed device clock does not matter.
        """
        reading = self._reading
        if reading is None:
            return True
        return (now - reading.received_at).total_seconds() > stale_after_s
