"""
Pydantic models for raw battery samples and derived battery state.

RawSample is what the telemetry source delivers (voltage, current and the
instant it was taken). BatteryState is the estimator's output; it is frozen
so a computed state can be handed to the gate, the alert machine and the
query store without any of them being able to change it.

Current sign convention: positive = discharging, negative = charging.

The publish sink's wire format is a flat object with ``voltage``,
``current``, ``soc``, ``time_to_full`` and ``time_to_empty``; a time field
that does not apply is serialised as ``-1`` because existing consumers
expect that sentinel.

CHANGELOG:
- 2026-10-13: Accept ``timestamp`` as an alias of ``ts`` in raw payloads
- 2026-10-12: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from relay.src.errors import MalformedSampleError

NOT_APPLICABLE: float = -1.0
"""Wire sentinel for a time field that does not apply to the current mode."""


class Mode(str, Enum):
    """Charge direction derived from the sign of the current."""

    CHARGING = "Charging"
    DISCHARGING = "Discharging"
    RESTING = "Resting"


class RawSample(BaseModel):
    """A single raw reading from the battery shunt.

    Attributes:
        voltage: Pack voltage in volts.
        current: Pack current in amperes (+ discharging, - charging).
        timestamp: When the reading was taken.
    """

    model_config = {"frozen": True}

    voltage: float = Field(allow_inf_nan=False)
    current: float = Field(allow_inf_nan=False)
    timestamp: datetime


class BatteryState(BaseModel):
    """Derived battery state for one sample.

    Attributes:
        voltage: Pack voltage in volts, copied from the sample.
        current: Pack current in amperes, copied from the sample.
        soc: State of charge in percent, clamped to [0, 100].
        time_to_full_h: Hours until full; ``None`` unless charging.
        time_to_empty_h: Hours until empty; ``None`` unless discharging.
        mode: Charging, Discharging or Resting.
    """

    model_config = {"frozen": True}

    voltage: float
    current: float
    soc: float = Field(ge=0.0, le=100.0)
    time_to_full_h: float | None = None
    time_to_empty_h: float | None = None
    mode: Mode


def to_wire(state: BatteryState) -> dict[str, float]:
    """Serialise a BatteryState to the flat publish format.

    Args:
        state: The state to serialise.

    Returns:
        dict with ``voltage``, ``current``, ``soc``, ``time_to_full`` and
        ``time_to_empty``. Not-applicable time fields are ``-1``.
    """
    return {
        "voltage": state.voltage,
        "current": state.current,
        "soc": state.soc,
        "time_to_full": (
            state.time_to_full_h
            if state.time_to_full_h is not None
            else NOT_APPLICABLE
        ),
        "time_to_empty": (
            state.time_to_empty_h
            if state.time_to_empty_h is not None
            else NOT_APPLICABLE
        ),
    }


def parse_sample(data: Any, *, received_at: datetime) -> RawSample:
    """Build a RawSample from a decoded JSON object.

    The timestamp is taken from ``ts`` (or ``timestamp``) when present;
    otherwise *received_at* is used, since small devices often have no
    reliable clock.

    Args:
        data: Decoded JSON value for one sample.
        received_at: Fallback timestamp, injected by the caller.

    Returns:
        The validated RawSample.

    Raises:
        MalformedSampleError: If *data* is not an object, voltage or current
            is missing, or either is not a finite number.
    """
    if not isinstance(data, dict):
        raise MalformedSampleError(f"Sample must be an object, got {type(data).__name__}")

    for key in ("voltage", "current"):
        value = data.get(key)
        if value is None:
            raise MalformedSampleError(f"Sample is missing '{key}'")
        # bool is an int subclass; a JSON true is never a reading.
        if isinstance(value, bool):
            raise MalformedSampleError(f"Sample '{key}' is not a number")

    ts = data.get("ts", data.get("timestamp")) or received_at
    try:
        sample = RawSample(
            voltage=data["voltage"],
            current=data["current"],
            timestamp=ts,
        )
    except ValidationError as exc:
        raise MalformedSampleError(str(exc)) from exc

    # Naive timestamps are taken as UTC so samples stay comparable.
    if sample.timestamp.tzinfo is None:
        sample = sample.model_copy(
            update={"timestamp": sample.timestamp.replace(tzinfo=UTC)}
        )
    return sample
