"""
Shared test fixtures for relay tests.

All relay env vars are cleaned before each test to ensure isolation, and
the working directory is moved to tmp_path so no .env file is picked up.
Provides settings, mocked sinks, and a FastAPI TestClient whose pipeline
task is disabled so tests can inspect the ingest queue directly.

CHANGELOG:
- 2026-10-15: Add API client fixtures (STORY-010)
- 2026-10-12: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from relay.src.config import RelaySettings

# All RelaySettings environment variable names, used for cleanup.
_ALL_RELAY_ENV_VARS = (
    "BATTERY_CAPACITY_AH",
    "BATTERY_V_MIN",
    "BATTERY_V_MAX",
    "CHARGE_EFFICIENCY",
    "GATE_VOLTAGE_DELTA",
    "GATE_CURRENT_DELTA",
    "GATE_SOC_DELTA",
    "ALERT_LOW_SOC",
    "ALERT_RECOVERY_SOC",
    "MAX_SUBSCRIBERS",
    "NOTIFY_ON_RECOVERY",
    "PUBLISH_URL",
    "PUBLISH_TOKEN",
    "TELEGRAM_BOT_TOKEN",
    "DASHBOARD_URL",
    "INGEST_QUEUE_SIZE",
    "MAX_SAMPLES_PER_REQUEST",
    "STALE_AFTER_S",
    "HEALTH_PATH",
    "HOST",
    "PORT",
)


@pytest.fixture(autouse=True)
def _clean_relay_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all relay env vars and isolate from .env files before each test."""
    for var in _ALL_RELAY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {"PUBLISH_URL": "https://broker.example.com/battery/data"}
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def settings(tmp_path: Path) -> RelaySettings:
    """RelaySettings with defaults, a test publish URL and a tmp health file."""
    return RelaySettings(
        publish_url="https://broker.example.com/battery/data",
        health_path=str(tmp_path / "health.json"),
        max_samples_per_request=5,
        ingest_queue_size=10,
    )


@pytest.fixture()
def mock_publisher() -> AsyncMock:
    """Publisher mock whose publish() always succeeds."""
    publisher = AsyncMock()
    publisher.publish = AsyncMock(return_value=True)
    return publisher


@pytest.fixture()
def mock_notifier() -> MagicMock:
    """Enabled notifier mock with async fan-out methods."""
    notifier = MagicMock()
    notifier.enabled = True
    notifier.notify_fired = AsyncMock(return_value=0)
    notifier.notify_cleared = AsyncMock(return_value=0)
    return notifier


@pytest.fixture()
def client(
    settings: RelaySettings,
    mock_publisher: AsyncMock,
    mock_notifier: MagicMock,
) -> Generator[TestClient, None, None]:
    """TestClient for the relay app with the pipeline task disabled.

    Uses a context manager so the lifespan (component construction) runs.
    """
    from relay.src.api.main import create_app

    app = create_app(
        settings,
        publisher=mock_publisher,
        notifier=mock_notifier,
        start_pipeline=False,
    )
    with TestClient(app) as test_client:
        yield test_client
