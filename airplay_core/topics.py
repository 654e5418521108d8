"""Topic builders shared by the bootstrap, router and discovery code."""

from __future__ import annotations

DEFAULT_DISCOVERY_PREFIX = "homeassistant"

PAYLOAD_ON = "ON"
PAYLOAD_OFF = "OFF"


def state_topic(node_id: str, instance_id: int) -> str:
    return f"{node_id}/{instance_id}/state"


def command_topic(node_id: str, instance_id: int) -> str:
    return f"{node_id}/{instance_id}/command"


def availability_topic(node_id: str) -> str:
    return f"{node_id}/availability"


def discovery_topic(
    node_id: str,
    instance_id: int,
    discovery_prefix: str | None = None,
) -> str:
    """Home Assistant MQTT discovery topic for one switch entity."""
    prefix = discovery_prefix or DEFAULT_DISCOVERY_PREFIX
    return f"{prefix}/switch/{node_id}/{instance_id}/config"


__all__ = [
    "DEFAULT_DISCOVERY_PREFIX",
    "PAYLOAD_OFF",
    "PAYLOAD_ON",
    "availability_topic",
    "command_topic",
    "discovery_topic",
    "state_topic",
]
