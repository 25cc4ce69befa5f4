"""
Relay configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded URLs or credentials.

CHANGELOG:
- 2026-10-14: Add hysteresis band and subscriber cap settings (STORY-005)
- 2026-10-12: Initial creation (STORY-001)

TODO:
- None
"""

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class RelaySettings(BaseSettings):
    """Battery relay configuration.

    All values are loaded from environment variables. ``PUBLISH_URL`` is
    required; everything else has a default matching a 100 Ah 24 V
    lead-acid bank.

    Attributes:
        battery_capacity_ah: Rated capacity in ampere-hours.
        battery_v_min: Voltage mapped to 0% SOC.
        battery_v_max: Voltage mapped to 100% SOC.
        charge_efficiency: Charge efficiency used for time-to-full.
        gate_voltage_delta: Publish when voltage moves at least this much (V).
        gate_current_delta: Publish when current moves at least this much (A).
        gate_soc_delta: Publish when SOC moves at least this much (points).
        alert_low_soc: SOC below which the low-battery alert fires.
        alert_recovery_soc: SOC at or above which the alert re-arms.
        max_subscribers: Maximum number of alert subscribers.
        notify_on_recovery: Also notify subscribers when the alert clears.
        publish_url: Downstream endpoint receiving gated states (HTTPS).
        publish_token: Optional bearer token for the publish endpoint.
        telegram_bot_token: Telegram bot token; empty disables alerts.
        dashboard_url: Dashboard link included in alert messages.
        ingest_queue_size: Max samples waiting for the pipeline.
        max_samples_per_request: Max samples in one ingest request.
        stale_after_s: Seconds without samples before /healthz reports 503.
        health_path: Health JSON file path.
        host: Bind address for the HTTP API.
        port: Bind port for the HTTP API.
    """

    battery_capacity_ah: float = 100.0
    battery_v_min: float = 20.8
    battery_v_max: float = 26.5
    charge_efficiency: float = 0.95
    gate_voltage_delta: float = 0.1
    gate_current_delta: float = 0.2
    gate_soc_delta: float = 0.5
    alert_low_soc: float = 20.0
    alert_recovery_soc: float = 25.0
    max_subscribers: int = 10
    notify_on_recovery: bool = False
    publish_url: str
    publish_token: str = ""
    telegram_bot_token: str = ""
    dashboard_url: str = "http://localhost:4200"
    ingest_queue_size: int = 1000
    max_samples_per_request: int = 100
    stale_after_s: float = 60.0
    health_path: str = "/data/health.json"
    host: str = "0.0.0.0"
    port: int = 3000

    @field_validator("publish_url")
    @classmethod
    def publish_url_must_be_https(cls, v: str) -> str:
        """Validate that the publish URL uses HTTPS."""
        if not v.lower().startswith("https://"):
            raise ValueError(f"PUBLISH_URL must use HTTPS (got: '{v[:20]}...')")
        return v.rstrip("/")

    @field_validator("battery_capacity_ah")
    @classmethod
    def capacity_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("BATTERY_CAPACITY_AH must be > 0")
        return v

    @field_validator("charge_efficiency")
    @classmethod
    def efficiency_must_be_fraction(cls, v: float) -> float:
        if not (0 < v <= 1):
            raise ValueError("CHARGE_EFFICIENCY must be in (0, 1]")
        return v

    @field_validator("gate_voltage_delta", "gate_current_delta", "gate_soc_delta")
    @classmethod
    def gate_deltas_must_be_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("GATE_*_DELTA thresholds must be >= 0")
        return v

    @field_validator("max_subscribers", "ingest_queue_size", "max_samples_per_request")
    @classmethod
    def counts_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(
                "MAX_SUBSCRIBERS, INGEST_QUEUE_SIZE and "
                "MAX_SAMPLES_PER_REQUEST must be >= 1"
            )
        return v

    @field_validator("stale_after_s")
    @classmethod
    def stale_after_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("STALE_AFTER_S must be > 0")
        return v

    @field_validator("port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("PORT must be between 1 and 65535")
        return v

    @model_validator(mode="after")
    def _voltage_window_and_band(self) -> "RelaySettings":
        """Reject an empty voltage window or an inverted hysteresis band."""
        if self.battery_v_max <= self.battery_v_min:
            raise ValueError("BATTERY_V_MAX must be greater than BATTERY_V_MIN")
        if not (0 <= self.alert_low_soc <= 100 and 0 <= self.alert_recovery_soc <= 100):
            raise ValueError("ALERT_LOW_SOC and ALERT_RECOVERY_SOC must be within [0, 100]")
        if self.alert_recovery_soc <= self.alert_low_soc:
            raise ValueError("ALERT_RECOVERY_SOC must be greater than ALERT_LOW_SOC")
        return self

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
