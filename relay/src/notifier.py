"""
Telegram notification sink for low-battery alerts.

Sends one Markdown message per subscribed chat through the Telegram Bot API
``sendMessage`` method. A failed delivery to one chat is logged and the
fan-out continues with the next chat.

The alert state machine decides *when* to notify; this module only formats
and delivers.

CHANGELOG:
- 2026-10-15: Add recovery message for NOTIFY_ON_RECOVERY
- 2026-10-14: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

import httpx

from relay.src.models import BatteryState, Mode

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

_DEFAULT_TIMEOUT_S = 10.0


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------


def format_duration(hours: float) -> str:
    """Format fractional hours as ``"<h>h <m>min"`` (both floored)."""
    whole = math.floor(hours)
    minutes = math.floor((hours - whole) * 60)
    return f"{whole}h {minutes}min"


def format_low_battery_alert(state: BatteryState, dashboard_url: str) -> str:
    """Build the Markdown low-battery alert text for *state*."""
    lines = [
        "🚨 *LOW BATTERY!* 🚨",
        "",
        f"🔋 {state.soc:.1f}%",
        f"⚡ {state.voltage:.2f}V",
        f"🔌 {abs(state.current):.2f}A",
        "",
    ]
    if state.mode is Mode.DISCHARGING:
        lines += ["⚠️ *CONNECT CHARGER NOW*", ""]
    if state.time_to_empty_h is not None:
        lines += [f"⏱️ Time remaining: {format_duration(state.time_to_empty_h)}", ""]
    lines.append(f"📊 {dashboard_url}")
    return "\n".join(lines)


def format_recovery(state: BatteryState, dashboard_url: str) -> str:
    """Build the Markdown text sent when the alert clears."""
    return "\n".join(
        [
            "✅ *Battery recovered*",
            "",
            f"🔋 {state.soc:.1f}%",
            f"⚡ {state.voltage:.2f}V",
            "",
            f"📊 {dashboard_url}",
        ]
    )


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------


class TelegramNotifier:
    """Fan-out notifier over the Telegram Bot API.

    Args:
        bot_token: Bot token from @BotFather. An empty token disables the
            notifier (``enabled`` is False and nothing is sent).
        dashboard_url: Link appended to every message.
        timeout_s: Per-request timeout in seconds (default 10).
    """

    def __init__(
        self,
        bot_token: str,
        dashboard_url: str,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self._bot_token = bot_token
        self._dashboard_url = dashboard_url
        self._timeout_s = timeout_s

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token)

    async def notify_fired(
        self,
        state: BatteryState,
        subscribers: Iterable[str],
    ) -> int:
        """Send the low-battery alert to every subscriber.

        Returns:
            Number of chats the message was delivered to.
        """
        text = format_low_battery_alert(state, self._dashboard_url)
        recipients = list(subscribers)
        if recipients:
            logger.info(
                "Sending low battery alert (soc=%.1f) to %d subscriber(s)",
                state.soc,
                len(recipients),
            )
        return await self._broadcast(text, recipients)

    async def notify_cleared(
        self,
        state: BatteryState,
        subscribers: Iterable[str],
    ) -> int:
        """Send the recovery message to every subscriber."""
        text = format_recovery(state, self._dashboard_url)
        return await self._broadcast(text, list(subscribers))

    async def _broadcast(self, text: str, recipients: list[str]) -> int:
        if not self.enabled or not recipients:
            return 0

        url = f"{TELEGRAM_API_BASE}/bot{self._bot_token}/sendMessage"
        delivered = 0
        async with httpx.AsyncClient(verify=True, timeout=self._timeout_s) as client:
            for chat_id in recipients:
                try:
                    response = await client.post(
                        url,
                        json={"chat_id": chat_id, "text": text, "parse_mode": "Markdown"},
                    )
                except httpx.HTTPError as exc:
                    logger.warning("Failed to notify chat %s: %s", chat_id, exc)
                    continue
                if response.status_code == 200:
                    delivered += 1
                else:
                    logger.warning(
                        "Failed to notify chat %s (HTTP %d)",
                        chat_id,
                        response.status_code,
                    )
        return delivered
