"""
Unit tests for the relay ingestion pipeline.

Tests verify:
- A sample flows estimator -> store -> alerts -> gate -> publisher.
- Samples that move nothing past the thresholds are suppressed.
- A low-battery crossing notifies current subscribers exactly once.
- Recovery notifications only when NOTIFY_ON_RECOVERY is enabled.
- Samples apply in arrival order whatever their device timestamp.
- Sink errors never break the loop; health file still updated.
- Shutdown drains samples already queued.
- Startup logs config summary without secrets.

CHANGELOG:
- 2026-10-17: Cover arrival-order sequencing with skewed device clocks
- 2026-10-15: Cover recovery notifications
- 2026-10-14: Initial creation -- TDD tests written first (STORY-008)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from relay.src.config import RelaySettings
from relay.src.health import HealthWriter
from relay.src.main import (
    RelayComponents,
    _process_once,
    build_components,
    log_config_summary,
    run_pipeline,
)
from relay.src.models import Mode, RawSample

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_T0 = datetime(2026, 10, 14, 10, 0, 0, tzinfo=UTC)


def _sample(voltage: float, current: float, offset_s: int = 0) -> RawSample:
    return RawSample(
        voltage=voltage,
        current=current,
        timestamp=_T0 + timedelta(seconds=offset_s),
    )


def _components(
    settings: RelaySettings,
    tmp_path: Path,
    mock_publisher: AsyncMock,
    mock_notifier: MagicMock,
) -> RelayComponents:
    return build_components(
        settings,
        publisher=mock_publisher,
        notifier=mock_notifier,
        health=HealthWriter(tmp_path / "health.json"),
    )


def _health(tmp_path: Path) -> dict:
    return json.loads((tmp_path / "health.json").read_text())


# ---------------------------------------------------------------------------
# Test: single sample through the pipeline
# ---------------------------------------------------------------------------


class TestProcessOnce:
    """_process_once() runs the full pipeline for one sample."""

    @pytest.mark.asyncio
    async def test_first_sample_is_published(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)

        await _process_once(_sample(25.2, 2.5), components=components)

        mock_publisher.publish.assert_awaited_once()
        state = mock_publisher.publish.call_args[0][0]
        assert state.soc == pytest.approx(77.19, abs=0.01)
        assert state.mode is Mode.DISCHARGING

        reading = components.store.snapshot()
        assert reading is not None
        assert reading.state == state
        assert reading.timestamp == _T0

        data = _health(tmp_path)
        assert data["published_count"] == 1
        assert data["last_publish_ts"] is not None

    @pytest.mark.asyncio
    async def test_unchanged_sample_is_suppressed(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)

        await _process_once(_sample(25.2, 2.5), components=components)
        await _process_once(_sample(25.22, 2.55, offset_s=5), components=components)

        assert mock_publisher.publish.await_count == 1
        assert components.store.samples_received == 2
        data = _health(tmp_path)
        assert data["published_count"] == 1
        assert data["suppressed_count"] == 1

    @pytest.mark.asyncio
    async def test_failed_publish_does_not_mark_last_publish(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        mock_publisher.publish = AsyncMock(return_value=False)
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)

        await _process_once(_sample(25.2, 2.5), components=components)

        data = _health(tmp_path)
        assert data["last_publish_ts"] is None
        assert data["published_count"] == 1

    @pytest.mark.asyncio
    async def test_samples_applied_in_arrival_order(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        """An older device timestamp does not reorder or drop a sample."""
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)

        await _process_once(_sample(25.2, 2.5, offset_s=10), components=components)
        await _process_once(_sample(22.0, 8.0, offset_s=0), components=components)

        assert components.store.samples_received == 2
        assert mock_publisher.publish.await_count == 2
        reading = components.store.snapshot()
        assert reading is not None
        assert reading.state.voltage == 22.0

    @pytest.mark.asyncio
    async def test_future_timestamp_does_not_block_later_samples(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        """A sample stamped far in the future must not stall the pipeline."""
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)
        components.alerts.subscribe("111")
        far_future = RawSample(
            voltage=25.2,
            current=2.5,
            timestamp=datetime(2099, 1, 1, tzinfo=UTC),
        )

        await _process_once(far_future, components=components)
        for i, voltage in enumerate((25.0, 24.0, 23.0, 22.0, 21.0)):
            await _process_once(_sample(voltage, 2.0, offset_s=i), components=components)

        assert components.store.samples_received == 6
        assert mock_publisher.publish.await_count == 6
        assert components.alerts.alert_active is True
        mock_notifier.notify_fired.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_publisher_error_does_not_raise(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        mock_publisher.publish = AsyncMock(side_effect=RuntimeError("boom"))
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)

        await _process_once(_sample(25.2, 2.5), components=components)

        assert components.store.samples_received == 1
        assert _health(tmp_path)["last_sample_ts"] is not None

    @pytest.mark.asyncio
    async def test_health_write_failure_is_swallowed(
        self,
        settings: RelaySettings,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        health = MagicMock()
        health.record_sample.side_effect = OSError("read-only file system")
        components = build_components(
            settings,
            publisher=mock_publisher,
            notifier=mock_notifier,
            health=health,
        )

        await _process_once(_sample(25.2, 2.5), components=components)

        mock_publisher.publish.assert_awaited_once()


# ---------------------------------------------------------------------------
# Test: alert notifications
# ---------------------------------------------------------------------------


class TestAlertNotifications:
    """Alert transitions are forwarded to the notifier."""

    @pytest.mark.asyncio
    async def test_low_soc_notifies_subscribers_once(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)
        components.alerts.subscribe("111")
        components.alerts.subscribe("222")

        await _process_once(_sample(25.2, 2.5), components=components)
        await _process_once(_sample(21.5, 2.0, offset_s=5), components=components)
        await _process_once(_sample(21.4, 2.0, offset_s=10), components=components)

        mock_notifier.notify_fired.assert_awaited_once()
        state, subscribers = mock_notifier.notify_fired.call_args[0]
        assert state.soc < settings.alert_low_soc
        assert subscribers == ("111", "222")
        assert _health(tmp_path)["alert_active"] is True

    @pytest.mark.asyncio
    async def test_alert_fires_even_when_gate_suppresses(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        """Gate and alert decisions are independent of each other."""
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)
        # soc just above 20% then just below: deltas stay under every threshold
        await _process_once(_sample(21.943, 0.0), components=components)
        await _process_once(_sample(21.937, 0.0, offset_s=5), components=components)

        assert mock_publisher.publish.await_count == 1
        mock_notifier.notify_fired.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_recovery_not_notified_by_default(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)

        await _process_once(_sample(21.5, 2.0), components=components)
        await _process_once(_sample(24.0, -5.0, offset_s=5), components=components)

        assert components.alerts.alert_active is False
        mock_notifier.notify_cleared.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recovery_notified_when_enabled(
        self,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        settings = RelaySettings(
            publish_url="https://broker.example.com/battery/data",
            notify_on_recovery=True,
        )
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)

        await _process_once(_sample(21.5, 2.0), components=components)
        await _process_once(_sample(24.0, -5.0, offset_s=5), components=components)

        mock_notifier.notify_cleared.assert_awaited_once()


# ---------------------------------------------------------------------------
# Test: loop and shutdown
# ---------------------------------------------------------------------------


class TestRunPipeline:
    """The loop consumes the queue in order and drains it on shutdown."""

    @pytest.mark.asyncio
    async def test_loop_processes_queued_samples(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)
        queue: asyncio.Queue[RawSample] = asyncio.Queue()
        shutdown_event = asyncio.Event()

        task = asyncio.create_task(
            run_pipeline(
                queue=queue,
                components=components,
                shutdown_event=shutdown_event,
            )
        )
        for i, voltage in enumerate((25.2, 24.0, 23.0)):
            queue.put_nowait(_sample(voltage, 2.0, offset_s=i))
        await asyncio.wait_for(queue.join(), timeout=5)
        shutdown_event.set()
        await asyncio.wait_for(task, timeout=5)

        assert components.store.samples_received == 3
        published = [c[0][0].voltage for c in mock_publisher.publish.call_args_list]
        assert published == [25.2, 24.0, 23.0]

    @pytest.mark.asyncio
    async def test_shutdown_drains_queue(
        self,
        settings: RelaySettings,
        tmp_path: Path,
        mock_publisher: AsyncMock,
        mock_notifier: MagicMock,
    ) -> None:
        components = _components(settings, tmp_path, mock_publisher, mock_notifier)
        queue: asyncio.Queue[RawSample] = asyncio.Queue()
        for i in range(4):
            queue.put_nowait(_sample(24.0 - i, 2.0, offset_s=i))
        shutdown_event = asyncio.Event()
        shutdown_event.set()

        await asyncio.wait_for(
            run_pipeline(
                queue=queue,
                components=components,
                shutdown_event=shutdown_event,
            ),
            timeout=5,
        )

        assert queue.empty()
        assert components.store.samples_received == 4


# ---------------------------------------------------------------------------
# Test: startup config logging
# ---------------------------------------------------------------------------


class TestStartupLogging:
    """Startup logs config summary without secrets."""

    def test_log_config_summary_does_not_contain_tokens(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        settings = RelaySettings(
            publish_url="https://broker.example.com/battery/data",
            publish_token="sink-secret-xyz",
            telegram_bot_token="123456:bot-secret-abc",
        )

        with caplog.at_level(logging.INFO, logger="relay.src.main"):
            log_config_summary(settings)

        full_log = caplog.text
        assert "sink-secret-xyz" not in full_log
        assert "bot-secret-abc" not in full_log
        assert "sha256=" in full_log
        assert "https://broker.example.com/battery/data" in full_log

    def test_log_config_summary_reports_empty_token(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        settings = RelaySettings(publish_url="https://broker.example.com/battery/data")

        with caplog.at_level(logging.INFO, logger="relay.src.main"):
            log_config_summary(settings)

        assert "telegram_token_masked=empty" in caplog.text
