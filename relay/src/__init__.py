"""
Battery relay service package.

Estimates lead-acid battery state from raw voltage/current samples, relays
significant changes to a downstream publish endpoint, and sends low-battery
alerts to subscribed Telegram chats with hysteresis.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-001)

TODO:
- None
"""
