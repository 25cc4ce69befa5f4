"""
Change-detection gate deciding whether a new BatteryState is worth publishing.

The publish transport is metered, so only significant changes go out. A
sample is significant when ANY of voltage, current or SOC has moved by at
least its threshold since the last *published* state (OR of deltas, not
AND). The very first sample always publishes to establish a baseline.

The gate records the published readings if and only if it says yes. It never
mutates the BatteryState it is given. State lives only in memory, so a
process restart re-baselines and publishes immediately.

Not thread-safe: the comparison and the baseline update are not atomic as a
unit. The pipeline loop is the single writer.

CHANGELOG:
- 2026-10-13: Add reset() for explicit re-baselining
- 2026-10-12: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from relay.src.errors import ConfigurationError
from relay.src.models import BatteryState

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChangeThresholds:
    """Minimum per-quantity change that makes a sample significant.

    Attributes:
        voltage: Volts (default 0.1).
        current: Amperes (default 0.2).
        soc: Percentage points (default 0.5).
    """

    voltage: float = 0.1
    current: float = 0.2
    soc: float = 0.5

    def __post_init__(self) -> None:
        """Reject negative or non-finite thresholds."""
        for name in ("voltage", "current", "soc"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ConfigurationError(
                    f"Change threshold '{name}' must be >= 0 (got {value})"
                )


@dataclass(slots=True)
class PublishGateState:
    """Readings of the last published state; all ``None`` until the first."""

    last_voltage: float | None = None
    last_current: float | None = None
    last_soc: float | None = None

    @property
    def is_set(self) -> bool:
        return self.last_voltage is not None

    def record(self, state: BatteryState) -> None:
        self.last_voltage = state.voltage
        self.last_current = state.current
        self.last_soc = state.soc

    def clear(self) -> None:
        self.last_voltage = None
        self.last_current = None
        self.last_soc = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def should_publish(
    state: BatteryState,
    gate_state: PublishGateState,
    thresholds: ChangeThresholds,
) -> bool:
    """Decide whether *state* should be published and record it if so.

    Args:
        state: The newly computed state. Read only.
        gate_state: Baseline of the last published readings. Updated to
            *state*'s readings if and only if the result is True.
        thresholds: Per-quantity significance thresholds.

    Returns:
        True on the first call, or when any single quantity has changed by
        at least its threshold since the last published state.
    """
    if not gate_state.is_set:
        gate_state.record(state)
        return True

    d_voltage = abs(state.voltage - gate_state.last_voltage)  # type: ignore[operator]
    d_current = abs(state.current - gate_state.last_current)  # type: ignore[operator]
    d_soc = abs(state.soc - gate_state.last_soc)  # type: ignore[operator]

    significant = (
        d_voltage >= thresholds.voltage
        or d_current >= thresholds.current
        or d_soc >= thresholds.soc
    )
    if significant:
        gate_state.record(state)
    else:
        logger.debug(
            "Change below thresholds (dV=%.3f, dI=%.3f, dSOC=%.3f)",
            d_voltage,
            d_current,
            d_soc,
        )
    return significant


class ChangeGate:
    """Stateful wrapper owning a PublishGateState and its thresholds.

    Args:
        thresholds: Significance thresholds; defaults to (0.1 V, 0.2 A, 0.5%).

    Usage::

        gate = ChangeGate(ChangeThresholds(voltage=0.1, current=0.2, soc=0.5))
        if gate.should_publish(state):
            await publisher.publish(state)
    """

    def __init__(self, thresholds: ChangeThresholds | None = None) -> None:
        self.thresholds = thresholds if thresholds is not None else ChangeThresholds()
        self._state = PublishGateState()

    @property
    def state(self) -> PublishGateState:
        """The current baseline (last published readings)."""
        return self._state

    def should_publish(self, state: BatteryState) -> bool:
        """See :func:`should_publish`."""
        return should_publish(state, self._state, self.thresholds)

    def reset(self) -> None:
        """Forget the baseline so the next sample publishes unconditionally."""
        self._state.clear()
