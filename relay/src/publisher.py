"""
HTTPS publish sink for gated battery states.

POSTs the flat wire format (``voltage``, ``current``, ``soc``,
``time_to_full``, ``time_to_empty`` with -1 for not-applicable) to the
configured endpoint. Only states that passed the change gate reach this
module, so each call is one metered message.

Publishing happens after the core has made its decision; a failed publish
is logged and reported as False but never raised into the pipeline.
TLS certificate verification is always enabled.

Operations:
- publish(state): POST one state, True on a 2xx response.
- consecutive_failures: Failed publishes since the last success.

CHANGELOG:
- 2026-10-14: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

import logging

import httpx

from relay.src.models import BatteryState, to_wire

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_S = 10.0


class Publisher:
    """HTTPS publisher for the downstream battery-state endpoint.

    Args:
        publish_url: Endpoint receiving one JSON state per POST. Must start
            with ``https://``.
        token: Optional bearer token; no Authorization header when empty.
        timeout_s: Per-request timeout in seconds (default 10).

    Raises:
        ValueError: If *publish_url* does not start with ``https://``.

    Usage::

        publisher = Publisher("https://broker.example.com/battery/data")
        if gate.should_publish(state):
            await publisher.publish(state)
    """

    def __init__(
        self,
        publish_url: str,
        token: str = "",
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        if not publish_url.lower().startswith("https://"):
            raise ValueError(f"Publish URL must use HTTPS (got: '{publish_url}').")
        self._publish_url = publish_url
        self._token = token
        self._timeout_s = timeout_s
        self._consecutive_failures = 0

    @property
    def consecutive_failures(self) -> int:
        """Failed publishes since the last successful one."""
        return self._consecutive_failures

    async def publish(self, state: BatteryState) -> bool:
        """POST *state* in wire format.

        Args:
            state: The gated state to publish.

        Returns:
            True on a 2xx response, False on network error or any other
            status.
        """
        payload = to_wire(state)
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}

        try:
            async with httpx.AsyncClient(verify=True, timeout=self._timeout_s) as client:
                response = await client.post(
                    self._publish_url,
                    json=payload,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            self._consecutive_failures += 1
            logger.warning(
                "Publish failed (network error, %d consecutive): %s",
                self._consecutive_failures,
                exc,
            )
            return False

        if 200 <= response.status_code < 300:
            self._consecutive_failures = 0
            logger.info(
                "Published V=%.2f I=%.2f SOC=%.1f",
                state.voltage,
                state.current,
                state.soc,
            )
            return True

        self._consecutive_failures += 1
        logger.warning(
            "Publish failed (HTTP %d, %d consecutive)",
            response.status_code,
            self._consecutive_failures,
        )
        return False
