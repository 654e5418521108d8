"""
bridge_controller.py

Wires configuration, connectors, router and the MQTT gateway together:
- builds one connector per configured device, keyed by its command topic
- on every broker (re)connect: discovery (first time only), command
  subscriptions, current state per device, availability ON
- runs the control loop: one inbound event at a time, in delivery order
- on shutdown: releases every connector, reports OFF, availability OFF
"""

from __future__ import annotations

import signal
import threading

from .addon_config import BridgeConfig
from .connector import build_connector
from .discovery import publish_discovery
from .logging_setup import logger
from .mqtt_dispatcher import EVENT_CONNECTED, EVENT_MESSAGE, BusEvent, MqttGateway
from .router import STATE_QOS, CommandRouter
from .topics import PAYLOAD_OFF, PAYLOAD_ON, availability_topic, command_topic, state_topic

__all__ = [
    "BridgeController",
    "start_bridge_controller",
]


class BridgeController:
    def __init__(self, config: BridgeConfig, gateway: MqttGateway | None = None) -> None:
        self.config = config
        self.availability_topic = availability_topic(config.node_id)
        self.gateway = gateway or MqttGateway(
            host=config.mqtt_host,
            port=config.mqtt_port,
            client_id=config.node_id,
            availability_topic=self.availability_topic,
            username=config.mqtt_user,
            password=config.mqtt_pass,
        )
        connectors = {}
        for device in config.devices:
            connectors[command_topic(config.node_id, device.instance_id)] = build_connector(
                device,
                state_topic(config.node_id, device.instance_id),
                config.settle_seconds,
            )
        self.router = CommandRouter(self.gateway, connectors)
        self._discovery_sent = False
        self._stop_evt = threading.Event()

    # ---- Bus events (control thread) ----

    def on_connected(self) -> None:
        """Announce devices and (re)subscribe; the session is clean on every connect."""
        if not self._discovery_sent:
            publish_discovery(
                self.gateway,
                self.config.node_id,
                self.config.devices,
                self.config.discovery_prefix,
            )
            self._discovery_sent = True
        for topic, connector in self.router.connectors.items():
            self.gateway.subscribe(topic, qos=STATE_QOS)
            # First connect: every connector is still OFF, which resets the state.
            self.router.publish_state(
                connector, PAYLOAD_ON if connector.is_connected else PAYLOAD_OFF
            )
        self.gateway.publish(self.availability_topic, PAYLOAD_ON, qos=STATE_QOS, retain=True)
        logger.info(
            {
                "event": "bridge_announced",
                "node_id": self.config.node_id,
                "devices": len(self.router.connectors),
            }
        )

    def handle_event(self, event: BusEvent) -> None:
        if event.kind == EVENT_CONNECTED:
            self.on_connected()
        elif event.kind == EVENT_MESSAGE:
            self.router.dispatch(event.topic, event.payload)

    # ---- Lifecycle ----

    def request_stop(self, signum: int | None = None, _frame: object = None) -> None:
        logger.info({"event": "controller_stop_requested", "signum": signum})
        self._stop_evt.set()

    @property
    def stopping(self) -> bool:
        return self._stop_evt.is_set()

    def run(self) -> None:
        """Start the gateway and process events until stop is requested."""
        self.gateway.start()
        logger.info({"event": "controller_ready", "node_id": self.config.node_id})
        try:
            for event in self.gateway.events(self._stop_evt):
                try:
                    self.handle_event(event)
                except Exception:  # noqa: BLE001
                    # One bad event must not take the other devices down.
                    logger.exception("controller_event_error kind=%s topic=%s", event.kind, event.topic)
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Release every connector, then report OFF everywhere and disconnect."""
        for connector in self.router.connectors.values():
            try:
                connector.close()
            except Exception:  # noqa: BLE001
                logger.exception("connector_close_error topic=%s", connector.state_topic)
            self.router.publish_state(connector, PAYLOAD_OFF)
        self.gateway.publish(self.availability_topic, PAYLOAD_OFF, qos=STATE_QOS, retain=True)
        self.gateway.stop()
        logger.info({"event": "controller_stopped"})


def start_bridge_controller(config: BridgeConfig, install_signals: bool = True) -> BridgeController:
    """Build the controller and block in its control loop until SIGTERM/SIGINT."""
    controller = BridgeController(config)
    if install_signals:
        signal.signal(signal.SIGTERM, controller.request_stop)
        signal.signal(signal.SIGINT, controller.request_stop)
    logger.info(
        {
            "event": "bridge_controller_start",
            "node_id": config.node_id,
            "host": config.mqtt_host,
            "port": config.mqtt_port,
            "user": bool(config.mqtt_user),
            "devices": [d.instance_id for d in config.devices],
        }
    )
    controller.run()
    return controller
