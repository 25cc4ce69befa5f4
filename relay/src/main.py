"""
Relay ingestion pipeline and process entrypoint.

A single asyncio loop consumes raw samples from an in-memory queue in
arrival order and runs each one through:

1. **Estimator**: raw (voltage, current) -> BatteryState.
2. **LastStateStore**: snapshot for the query endpoints.
3. **AlertStateMachine**: low-battery alert transition, if any.
4. **ChangeGate**: publish-or-drop decision.
5. **Sinks**: Publisher for gated states, TelegramNotifier for alerts.

This loop is the only writer of the gate baseline and the alert state, so
neither needs cross-task coordination. The loop is resilient: a malformed
sample or a sink failure is logged and the next sample is processed as
usual. On shutdown the loop stops waiting for new samples and drains what
is already queued.

Samples are applied in queue order. The device timestamp is only reported
by the state endpoint and is never used for sequencing, so a device with a
wrong clock cannot stall the loop.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-17: Sequence on arrival order; device timestamps are informational
- 2026-10-15: Serve HTTP API from main() (STORY-010)
- 2026-10-14: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from relay.src.alerts import AlertStateMachine
from relay.src.errors import MalformedSampleError
from relay.src.estimator import Estimator
from relay.src.gate import ChangeGate, ChangeThresholds
from relay.src.health import HealthWriter
from relay.src.notifier import TelegramNotifier
from relay.src.publisher import Publisher
from relay.src.state import LastStateStore

if TYPE_CHECKING:
    from relay.src.config import RelaySettings
    from relay.src.models import RawSample

logger = logging.getLogger(__name__)

_QUEUE_POLL_S = 1.0
"""How often the ingest loop re-checks the shutdown event while idle."""


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging() -> None:
    """Configure structured JSON logging for the relay.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, excluding secrets.

    Tokens are logged only as a fingerprint.

    Args:
        settings: A RelaySettings instance (or any object with the same attrs).
    """
    logger.info(
        "Relay starting with config: "
        "capacity_ah=%s, v_min=%s, v_max=%s, charge_efficiency=%s, "
        "gate_deltas=(%s V, %s A, %s %%), alert_low_soc=%s, "
        "alert_recovery_soc=%s, max_subscribers=%s, notify_on_recovery=%s, "
        "publish_url=%s, publish_token_masked=%s, telegram_token_masked=%s, "
        "ingest_queue_size=%s, health_path=%s",
        settings.battery_capacity_ah,  # type: ignore[union-attr]
        settings.battery_v_min,  # type: ignore[union-attr]
        settings.battery_v_max,  # type: ignore[union-attr]
        settings.charge_efficiency,  # type: ignore[union-attr]
        settings.gate_voltage_delta,  # type: ignore[union-attr]
        settings.gate_current_delta,  # type: ignore[union-attr]
        settings.gate_soc_delta,  # type: ignore[union-attr]
        settings.alert_low_soc,  # type: ignore[union-attr]
        settings.alert_recovery_soc,  # type: ignore[union-attr]
        settings.max_subscribers,  # type: ignore[union-attr]
        settings.notify_on_recovery,  # type: ignore[union-attr]
        settings.publish_url,  # type: ignore[union-attr]
        _masked_token(settings.publish_token),  # type: ignore[union-attr]
        _masked_token(settings.telegram_bot_token),  # type: ignore[union-attr]
        settings.ingest_queue_size,  # type: ignore[union-attr]
        settings.health_path,  # type: ignore[union-attr]
    )


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


@dataclass
class RelayComponents:
    """Everything the pipeline needs, explicitly constructed and owned."""

    estimator: Estimator
    gate: ChangeGate
    alerts: AlertStateMachine
    store: LastStateStore
    publisher: Publisher
    notifier: TelegramNotifier
    health: HealthWriter | None = None
    notify_on_recovery: bool = False


def build_components(
    settings: RelaySettings,
    *,
    publisher: Publisher | None = None,
    notifier: TelegramNotifier | None = None,
    health: HealthWriter | None = None,
) -> RelayComponents:
    """Construct the pipeline components from settings.

    Core constructors raise ConfigurationError on invalid values, so a bad
    configuration fails here, at startup.

    Args:
        settings: Loaded RelaySettings.
        publisher: Publisher override (tests inject mocks).
        notifier: Notifier override (tests inject mocks).
        health: HealthWriter, or None to skip health writes.
    """
    return RelayComponents(
        estimator=Estimator(
            capacity_ah=settings.battery_capacity_ah,
            v_min=settings.battery_v_min,
            v_max=settings.battery_v_max,
            efficiency=settings.charge_efficiency,
        ),
        gate=ChangeGate(
            ChangeThresholds(
                voltage=settings.gate_voltage_delta,
                current=settings.gate_current_delta,
                soc=settings.gate_soc_delta,
            )
        ),
        alerts=AlertStateMachine(
            low_threshold=settings.alert_low_soc,
            recovery_threshold=settings.alert_recovery_soc,
            max_subscribers=settings.max_subscribers,
        ),
        store=LastStateStore(),
        publisher=publisher
        if publisher is not None
        else Publisher(settings.publish_url, token=settings.publish_token),
        notifier=notifier
        if notifier is not None
        else TelegramNotifier(settings.telegram_bot_token, settings.dashboard_url),
        health=health,
        notify_on_recovery=settings.notify_on_recovery,
    )


# ---------------------------------------------------------------------------
# Single-iteration function (easily testable)
# ---------------------------------------------------------------------------


async def _process_once(sample: RawSample, *, components: RelayComponents) -> None:
    """Run one raw sample through the core and hand decisions to the sinks.

    Catches all exceptions so that the caller's loop is never broken.

    Args:
        sample: The raw sample, in arrival order.
        components: Pipeline components.
    """
    published = False
    delivered = False
    try:
        state = components.estimator.estimate(sample.voltage, sample.current)
        components.store.update(state, sample.timestamp)
        transition = components.alerts.on_reading(state.soc)

        published = components.gate.should_publish(state)
        if published:
            delivered = await components.publisher.publish(state)
        else:
            logger.debug("Sample suppressed by change gate")

        if transition.fired:
            await components.notifier.notify_fired(state, components.alerts.subscribers())
        elif transition.cleared and components.notify_on_recovery:
            await components.notifier.notify_cleared(
                state, components.alerts.subscribers()
            )
    except MalformedSampleError as exc:
        logger.warning("Dropping malformed sample: %s", exc)
        return
    except Exception:
        logger.error("Pipeline error while processing sample", exc_info=True)

    # Update health file after every processed sample (success or failure)
    if components.health is not None:
        try:
            if delivered:
                components.health.record_publish()
            components.health.record_sample(
                published=published,
                alert_active=components.alerts.alert_active,
            )
        except Exception:
            logger.warning("Failed to write health file", exc_info=True)


# ---------------------------------------------------------------------------
# Loop runner
# ---------------------------------------------------------------------------


async def _ingest_loop(
    *,
    queue: asyncio.Queue[RawSample],
    components: RelayComponents,
    shutdown_event: asyncio.Event,
) -> None:
    """Consume the queue in order until shutdown_event is set.

    Args:
        queue: Samples in arrival order.
        components: Pipeline components.
        shutdown_event: Event to signal graceful shutdown.
    """
    logger.info("Ingest loop started")
    while not shutdown_event.is_set():
        sample: RawSample | None = None
        # Use wait with timeout so we can check shutdown while idle
        with contextlib.suppress(TimeoutError):
            sample = await asyncio.wait_for(queue.get(), timeout=_QUEUE_POLL_S)
        if sample is None:
            continue
        try:
            await _process_once(sample, components=components)
        finally:
            queue.task_done()
    logger.info("Ingest loop stopped")


async def run_pipeline(
    *,
    queue: asyncio.Queue[RawSample],
    components: RelayComponents,
    shutdown_event: asyncio.Event,
) -> None:
    """Run the ingest loop until shutdown, then drain queued samples.

    Args:
        queue: Samples in arrival order.
        components: Pipeline components.
        shutdown_event: Event to signal graceful shutdown.
    """
    await _ingest_loop(
        queue=queue,
        components=components,
        shutdown_event=shutdown_event,
    )

    drained = 0
    while not queue.empty():
        sample = queue.get_nowait()
        try:
            await _process_once(sample, components=components)
        finally:
            queue.task_done()
        drained += 1
    logger.info("Pipeline shutdown complete (drained %d queued sample(s))", drained)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Synchronous entrypoint: load config and serve the HTTP API."""
    configure_logging()

    import uvicorn

    from relay.src.api.main import create_app
    from relay.src.config import RelaySettings

    settings = RelaySettings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
