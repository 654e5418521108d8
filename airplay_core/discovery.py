import json

from .addon_config import DeviceConfig
from .logging_setup import logger
from .topics import (
    PAYLOAD_OFF,
    PAYLOAD_ON,
    availability_topic,
    command_topic,
    discovery_topic,
    state_topic,
)

ICON = "mdi:cast-audio"


def discovery_payload(node_id: str, device: DeviceConfig) -> dict:
    return {
        "icon": ICON,
        "name": device.name,
        "state_topic": state_topic(node_id, device.instance_id),
        "command_topic": command_topic(node_id, device.instance_id),
        "availability_topic": availability_topic(node_id),
        "payload_available": PAYLOAD_ON,
        "payload_not_available": PAYLOAD_OFF,
        "unique_id": device.instance_id,
    }


def discovery_payloads(node_id: str, devices, discovery_prefix=None):
    """(topic, json) for every device, in config order."""
    return [
        (
            discovery_topic(node_id, dev.instance_id, discovery_prefix),
            json.dumps(discovery_payload(node_id, dev)),
        )
        for dev in devices
    ]


def publish_discovery(mqtt, node_id: str, devices, discovery_prefix=None, retain=True) -> int:
    """Tell Home Assistant how to talk to each device; returns how many were sent."""
    sent = 0
    for topic, payload in discovery_payloads(node_id, devices, discovery_prefix):
        if mqtt.publish(topic, payload, qos=1, retain=retain):
            sent += 1
            logger.info(f"discovery: published {topic}")
        else:
            logger.error({"event": "discovery_publish_failed", "topic": topic})
    return sent
