"""
Error taxonomy for the battery relay.

- ConfigurationError: fatal at startup (bad voltage window, negative
  thresholds, inverted hysteresis band).
- MalformedSampleError: a single raw sample is unusable; the caller drops
  it and continues with the next one.
- CapacityExceededError: subscriber registry is full; reported to the
  caller as a rejected subscribe, never fatal.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-002)

TODO:
- None
"""


class ConfigurationError(ValueError):
    """Raised when a component is constructed with invalid configuration."""


class MalformedSampleError(ValueError):
    """Raised when a raw sample is missing or has non-numeric readings."""


class CapacityExceededError(Exception):
    """Raised when a subscribe would exceed the subscriber cap."""

    def __init__(self, capacity: int) -> None:
        super().__init__(f"Subscriber capacity of {capacity} reached")
        self.capacity = capacity
