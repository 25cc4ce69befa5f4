"""
Pure battery state estimator.

Maps one (voltage, current) sample to a BatteryState: state of charge by
linear interpolation across the configured voltage window, charge direction
from the sign of the current with a small deadband, and time-to-full /
time-to-empty from the rated capacity.

The voltage-to-SOC mapping is deliberately linear. It is known to be off
near the ends of a lead-acid discharge curve and ignores temperature, but it
is deterministic and matches what the field devices already report.

No I/O, no clock, no internal state: safe to call from any thread.

CHANGELOG:
- 2026-10-13: Validate configuration once in Estimator.__init__
- 2026-10-12: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

import math

from relay.src.errors import ConfigurationError, MalformedSampleError
from relay.src.models import BatteryState, Mode

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CURRENT_DEADBAND_A: float = 0.1
"""Currents within +/- this many amperes are classified as Resting."""

DEFAULT_CHARGE_EFFICIENCY: float = 0.95
"""Fraction of charging current that ends up stored (charge losses)."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validate_config(
    capacity_ah: float,
    v_min: float,
    v_max: float,
    efficiency: float,
) -> None:
    """Raise ConfigurationError for a window or capacity that cannot work."""
    if not (math.isfinite(v_min) and math.isfinite(v_max)):
        raise ConfigurationError("Voltage window bounds must be finite")
    if v_max <= v_min:
        raise ConfigurationError(
            f"v_max ({v_max}) must be greater than v_min ({v_min})"
        )
    if not math.isfinite(capacity_ah) or capacity_ah <= 0:
        raise ConfigurationError(f"capacity_ah must be > 0 (got {capacity_ah})")
    if not (0 < efficiency <= 1):
        raise ConfigurationError(
            f"Charge efficiency must be in (0, 1] (got {efficiency})"
        )


def classify_mode(current: float) -> Mode:
    """Classify charge direction from current, with a +/-0.1 A deadband."""
    if current < -CURRENT_DEADBAND_A:
        return Mode.CHARGING
    if current > CURRENT_DEADBAND_A:
        return Mode.DISCHARGING
    return Mode.RESTING


def _soc(voltage: float, v_min: float, v_max: float) -> float:
    soc = 100.0 * (voltage - v_min) / (v_max - v_min)
    return max(0.0, min(100.0, soc))


def _estimate(
    voltage: float,
    current: float,
    *,
    capacity_ah: float,
    v_min: float,
    v_max: float,
    efficiency: float,
) -> BatteryState:
    if not (math.isfinite(voltage) and math.isfinite(current)):
        raise MalformedSampleError(
            f"Non-finite reading (voltage={voltage}, current={current})"
        )

    soc = _soc(voltage, v_min, v_max)

    time_to_full: float | None = None
    if current < 0:
        time_to_full = (capacity_ah * (100.0 - soc) / 100.0) / (
            abs(current) * efficiency
        )

    time_to_empty: float | None = None
    if current > 0:
        time_to_empty = (capacity_ah * soc / 100.0) / current

    # Inside the deadband neither time field applies, whatever the sign.
    mode = classify_mode(current)
    if mode is not Mode.CHARGING:
        time_to_full = None
    if mode is not Mode.DISCHARGING:
        time_to_empty = None

    return BatteryState(
        voltage=voltage,
        current=current,
        soc=soc,
        time_to_full_h=time_to_full,
        time_to_empty_h=time_to_empty,
        mode=mode,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def estimate(
    voltage: float,
    current: float,
    capacity_ah: float,
    v_min: float,
    v_max: float,
) -> BatteryState:
    """Estimate battery state for a single sample.

    This is a **pure function**: identical inputs always produce an identical
    BatteryState. Because it has no construction step, the configuration is
    validated on every call; long-running callers should build an
    :class:`Estimator` once instead.

    Args:
        voltage: Pack voltage in volts.
        current: Pack current in amperes (+ discharging, - charging).
        capacity_ah: Rated capacity in ampere-hours.
        v_min: Voltage mapped to 0% SOC.
        v_max: Voltage mapped to 100% SOC.

    Returns:
        The derived BatteryState.

    Raises:
        ConfigurationError: If ``v_max <= v_min`` or ``capacity_ah <= 0``.
        MalformedSampleError: If voltage or current is not finite.
    """
    _validate_config(capacity_ah, v_min, v_max, DEFAULT_CHARGE_EFFICIENCY)
    return _estimate(
        voltage,
        current,
        capacity_ah=capacity_ah,
        v_min=v_min,
        v_max=v_max,
        efficiency=DEFAULT_CHARGE_EFFICIENCY,
    )


class Estimator:
    """Battery state estimator bound to one battery's configuration.

    Configuration is checked once here so that a misconfigured service fails
    at startup rather than on the first sample.

    Args:
        capacity_ah: Rated capacity in ampere-hours.
        v_min: Voltage mapped to 0% SOC.
        v_max: Voltage mapped to 100% SOC.
        efficiency: Charge efficiency used for time-to-full (default 0.95).

    Raises:
        ConfigurationError: If the voltage window is empty or inverted, the
            capacity is not positive, or the efficiency is outside (0, 1].
    """

    def __init__(
        self,
        capacity_ah: float,
        v_min: float,
        v_max: float,
        efficiency: float = DEFAULT_CHARGE_EFFICIENCY,
    ) -> None:
        _validate_config(capacity_ah, v_min, v_max, efficiency)
        self.capacity_ah = capacity_ah
        self.v_min = v_min
        self.v_max = v_max
        self.efficiency = efficiency

    def estimate(self, voltage: float, current: float) -> BatteryState:
        """Estimate battery state for one (voltage, current) sample.

        Raises:
            MalformedSampleError: If voltage or current is not finite.
        """
        return _estimate(
            voltage,
            current,
            capacity_ah=self.capacity_ah,
            v_min=self.v_min,
            v_max=self.v_max,
            efficiency=self.efficiency,
        )
