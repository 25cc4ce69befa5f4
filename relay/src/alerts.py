"""
Hysteresis-based low-battery alert state machine and subscriber registry.

Two states, global across all subscribers: Normal and AlertActive.

- Normal -> AlertActive when SOC drops strictly below ``low_threshold``.
  This is the only transition that fires an alert, so repeated low
  readings while already active stay silent.
- AlertActive -> Normal only when SOC climbs to ``recovery_threshold`` or
  above. The gap between the two thresholds is the hysteresis band: SOC
  wobbling around the low threshold (20.1 -> 19.9 -> 20.1) cannot re-arm
  the alert.

The transition check-and-set runs under its own lock. Subscribe and
unsubscribe only touch the subscriber registry, which has a separate lock,
so they never contend with readings.

CHANGELOG:
- 2026-10-14: Split subscriber set into SubscriberRegistry with its own lock
- 2026-10-12: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from relay.src.errors import CapacityExceededError, ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_LOW_THRESHOLD: float = 20.0
DEFAULT_RECOVERY_THRESHOLD: float = 25.0
DEFAULT_MAX_SUBSCRIBERS: int = 10


@dataclass(frozen=True, slots=True)
class AlertTransition:
    """Outcome of feeding one SOC value to the state machine.

    At most one of ``fired`` and ``cleared`` is True.
    """

    fired: bool = False
    cleared: bool = False


_NO_TRANSITION = AlertTransition()


# ---------------------------------------------------------------------------
# Subscriber registry
# ---------------------------------------------------------------------------


class SubscriberRegistry:
    """Bounded, thread-safe set of subscriber ids.

    Args:
        capacity: Maximum number of subscribers (default 10).

    Raises:
        ConfigurationError: If *capacity* is less than 1.
    """

    def __init__(self, capacity: int = DEFAULT_MAX_SUBSCRIBERS) -> None:
        if capacity < 1:
            raise ConfigurationError(f"Subscriber capacity must be >= 1 (got {capacity})")
        self.capacity = capacity
        self._members: set[str] = set()
        self._lock = threading.Lock()

    def add(self, subscriber_id: str) -> bool:
        """Add a subscriber.

        Returns:
            True if the id was added, False if it was already a member.

        Raises:
            CapacityExceededError: If the registry is full and the id is new.
                Existing members are never evicted to make room.
        """
        with self._lock:
            if subscriber_id in self._members:
                return False
            if len(self._members) >= self.capacity:
                raise CapacityExceededError(self.capacity)
            self._members.add(subscriber_id)
            return True

    def discard(self, subscriber_id: str) -> bool:
        """Remove a subscriber; False if it was not a member."""
        with self._lock:
            if subscriber_id not in self._members:
                return False
            self._members.remove(subscriber_id)
            return True

    def snapshot(self) -> tuple[str, ...]:
        """Return the current members, sorted, as an immutable tuple."""
        with self._lock:
            return tuple(sorted(self._members))

    def __contains__(self, subscriber_id: object) -> bool:
        with self._lock:
            return subscriber_id in self._members

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)


# ---------------------------------------------------------------------------
# Alert state machine
# ---------------------------------------------------------------------------


class AlertStateMachine:
    """Edge-triggered low-battery alert with a hysteresis band.

    Args:
        low_threshold: SOC (%) strictly below which the alert fires.
        recovery_threshold: SOC (%) at or above which the alert re-arms.
            Must be strictly greater than *low_threshold*.
        max_subscribers: Subscriber cap (default 10).

    Raises:
        ConfigurationError: If a threshold is outside [0, 100] or the
            recovery threshold does not exceed the low threshold.

    Usage::

        machine = AlertStateMachine(low_threshold=20, recovery_threshold=25)
        machine.subscribe("123456789")
        transition = machine.on_reading(state.soc)
        if transition.fired:
            await notifier.notify_fired(state, machine.subscribers())
    """

    def __init__(
        self,
        low_threshold: float = DEFAULT_LOW_THRESHOLD,
        recovery_threshold: float = DEFAULT_RECOVERY_THRESHOLD,
        max_subscribers: int = DEFAULT_MAX_SUBSCRIBERS,
    ) -> None:
        for name, value in (
            ("low_threshold", low_threshold),
            ("recovery_threshold", recovery_threshold),
        ):
            if not (0 <= value <= 100):
                raise ConfigurationError(f"{name} must be within [0, 100] (got {value})")
        if recovery_threshold <= low_threshold:
            raise ConfigurationError(
                f"recovery_threshold ({recovery_threshold}) must be greater than "
                f"low_threshold ({low_threshold})"
            )
        self.low_threshold = low_threshold
        self.recovery_threshold = recovery_threshold
        self._registry = SubscriberRegistry(max_subscribers)
        self._alert_active = False
        self._transition_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Alert state
    # ------------------------------------------------------------------

    @property
    def alert_active(self) -> bool:
        """True while in AlertActive."""
        return self._alert_active

    def on_reading(self, soc: float) -> AlertTransition:
        """Feed one SOC value and report the transition it caused, if any.

        Values must be fed in arrival order; reordering would corrupt the
        hysteresis band.

        Args:
            soc: State of charge in percent.

        Returns:
            ``AlertTransition(fired=True)`` on Normal -> AlertActive,
            ``AlertTransition(cleared=True)`` on AlertActive -> Normal,
            otherwise no transition.
        """
        with self._transition_lock:
            if not self._alert_active and soc < self.low_threshold:
                self._alert_active = True
                logger.info(
                    "Low battery alert fired (soc=%.1f < %.1f)",
                    soc,
                    self.low_threshold,
                )
                return AlertTransition(fired=True)

            if self._alert_active and soc >= self.recovery_threshold:
                self._alert_active = False
                logger.info(
                    "Low battery alert cleared (soc=%.1f >= %.1f)",
                    soc,
                    self.recovery_threshold,
                )
                return AlertTransition(cleared=True)

            return _NO_TRANSITION

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._registry.capacity

    def subscribe(self, subscriber_id: str) -> bool:
        """Subscribe an id to alerts.

        Subscribing an existing member is a successful no-op.

        Returns:
            True if the id is subscribed after the call, False if the
            registry was full.
        """
        try:
            added = self._registry.add(subscriber_id)
        except CapacityExceededError as exc:
            logger.warning("Rejected subscriber %s: %s", subscriber_id, exc)
            return False
        if added:
            logger.info(
                "New subscriber %s (total: %d/%d)",
                subscriber_id,
                len(self._registry),
                self._registry.capacity,
            )
        return True

    def unsubscribe(self, subscriber_id: str) -> bool:
        """Unsubscribe an id; False (not an error) when it was not subscribed."""
        removed = self._registry.discard(subscriber_id)
        if removed:
            logger.info(
                "Removed subscriber %s (total: %d)",
                subscriber_id,
                len(self._registry),
            )
        return removed

    def subscribers(self) -> tuple[str, ...]:
        """Snapshot of current subscribers, safe to iterate during fan-out."""
        return self._registry.snapshot()

    def subscriber_count(self) -> int:
        return len(self._registry)
