"""
mqtt_dispatcher.py

Owns the broker session: credentials, LWT availability, reconnect backoff,
publish/subscribe. The paho network loop runs on its own thread and only
enqueues events; the bridge consumes them one at a time on the control
thread, in delivery order.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator
from dataclasses import dataclass

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from .logging_setup import logger
from .topics import PAYLOAD_OFF

DEFAULT_QOS = 1
DEFAULT_KEEPALIVE = 60

EVENT_CONNECTED = "connected"
EVENT_MESSAGE = "message"


@dataclass(frozen=True)
class BusEvent:
    kind: str
    topic: str = ""
    payload: bytes = b""


class MqttGateway:
    def __init__(
        self,
        host: str,
        port: int,
        client_id: str,
        availability_topic: str,
        username: str | None = None,
        password: str | None = None,
        keepalive: int = DEFAULT_KEEPALIVE,
    ) -> None:
        self.host = host
        self.port = port
        self.client_id = client_id
        self.availability_topic = availability_topic
        self.keepalive = keepalive
        self._events: queue.Queue[BusEvent] = queue.Queue()
        self._last_info: mqtt.MQTTMessageInfo | None = None

        # Paho v2 callback API; v311 is fine for HA
        self.client = mqtt.Client(
            callback_api_version=CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
            clean_session=True,
        )
        if username:
            self.client.username_pw_set(username=username, password=(password or ""))

        # LWT/availability
        self.client.will_set(availability_topic, payload=PAYLOAD_OFF, qos=DEFAULT_QOS, retain=True)
        # Reconnect backoff (let paho handle retries)
        self.client.reconnect_delay_set(min_delay=1, max_delay=30)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    # ---- Callbacks (network thread) ----

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            logger.error({"event": "mqtt_connect_failed", "reason": str(reason_code)})
            return
        logger.info({"event": "mqtt_connected", "host": self.host, "port": self.port})
        self._events.put(BusEvent(EVENT_CONNECTED))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        logger.warning({"event": "mqtt_disconnected", "reason": str(reason_code)})

    def _on_message(self, client, userdata, msg) -> None:
        self._events.put(BusEvent(EVENT_MESSAGE, msg.topic, bytes(msg.payload or b"")))

    # ---- Control-thread API ----

    def publish(self, topic: str, payload: str, qos: int = DEFAULT_QOS, retain: bool = True) -> bool:
        """Queue a publish; returns False (and logs) when paho rejects it."""
        try:
            info = self.client.publish(topic, payload=payload, qos=qos, retain=retain)
        except (ValueError, OSError) as e:
            logger.error({"event": "mqtt_publish_error", "topic": topic, "error": repr(e)})
            return False
        # Not connected still queues QoS>0 messages for delivery on reconnect.
        if info.rc not in (mqtt.MQTT_ERR_SUCCESS, mqtt.MQTT_ERR_NO_CONN):
            logger.error(
                {"event": "mqtt_publish_error", "topic": topic, "rc": mqtt.error_string(info.rc)}
            )
            return False
        self._last_info = info
        logger.debug({"event": "mqtt_published", "topic": topic, "payload": payload, "retain": retain})
        return True

    def subscribe(self, topic: str, qos: int = DEFAULT_QOS) -> bool:
        rc, _mid = self.client.subscribe(topic, qos=qos)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error({"event": "mqtt_subscribe_error", "topic": topic, "rc": mqtt.error_string(rc)})
            return False
        logger.info({"event": "mqtt_subscribed", "topic": topic, "qos": qos})
        return True

    def events(self, stop: threading.Event, poll_interval: float = 1.0) -> Iterator[BusEvent]:
        """Yield inbound events in delivery order until ``stop`` is set."""
        while not stop.is_set():
            try:
                yield self._events.get(timeout=poll_interval)
            except queue.Empty:
                continue

    def start(self) -> None:
        logger.info(
            {
                "event": "mqtt_connect_attempt",
                "host": self.host,
                "port": self.port,
                "client_id": self.client_id,
            }
        )
        self.client.connect_async(self.host, self.port, self.keepalive)
        self.client.loop_start()

    def stop(self, flush_timeout: float = 2.0) -> None:
        """Flush the last publish (best effort), then disconnect cleanly.

        A clean disconnect does not fire the LWT; callers publish availability
        OFF themselves before stopping.
        """
        info = self._last_info
        if info is not None and info.rc == mqtt.MQTT_ERR_SUCCESS:
            try:
                info.wait_for_publish(timeout=flush_timeout)
            except (RuntimeError, ValueError) as e:
                logger.warning({"event": "mqtt_flush_failed", "error": repr(e)})
        self.client.disconnect()
        self.client.loop_stop()
        logger.info({"event": "mqtt_stopped"})


__all__ = [
    "DEFAULT_QOS",
    "EVENT_CONNECTED",
    "EVENT_MESSAGE",
    "BusEvent",
    "MqttGateway",
]
