"""Inbound command routing.

Maps a command topic to its connector, applies ON/OFF and publishes the
resulting state (retained, QoS 1). The topic table is built once and is
read-only afterwards, so concurrent reads are safe; writes to connectors are
not, which is why dispatch happens on a single control thread.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from .logging_setup import bridge_logger as logger
from .process_pair import ConnectorError
from .topics import PAYLOAD_OFF, PAYLOAD_ON
from .types import Connector, Publisher

STATE_QOS = 1


class CommandRouter:
    def __init__(self, publisher: Publisher, connectors: Mapping[str, Connector]) -> None:
        self._publisher = publisher
        self._connectors: Mapping[str, Connector] = MappingProxyType(dict(connectors))

    @property
    def connectors(self) -> Mapping[str, Connector]:
        return self._connectors

    @property
    def command_topics(self) -> list[str]:
        return list(self._connectors)

    def publish_state(self, connector: Connector, payload: str) -> bool:
        ok = self._publisher.publish(connector.state_topic, payload, qos=STATE_QOS, retain=True)
        if not ok:
            logger.error(
                {"event": "state_publish_failed", "topic": connector.state_topic, "payload": payload}
            )
        return ok

    def dispatch(self, topic: str, payload: bytes | str) -> str | None:
        """Handle one inbound message.

        Returns the state payload published, or None if the message was
        ignored (unknown topic or unsupported payload).
        """
        connector = self._connectors.get(topic)
        if connector is None:
            return None
        text = payload.decode("utf-8", "replace") if isinstance(payload, bytes) else payload
        if text == PAYLOAD_ON:
            return self._turn_on(topic, connector)
        if text == PAYLOAD_OFF:
            return self._turn_off(topic, connector)
        logger.debug({"event": "command_ignored", "topic": topic, "payload": text[:32]})
        return None

    def _turn_on(self, topic: str, connector: Connector) -> str:
        logger.info({"event": "command_received", "topic": topic, "command": PAYLOAD_ON})
        try:
            connector.connect()
        except ConnectorError as e:
            logger.error({"event": "command_on_failed", "topic": topic, "error": str(e)})
            result = PAYLOAD_OFF
        except Exception as e:  # noqa: BLE001
            logger.exception({"event": "command_on_failed", "topic": topic, "error": repr(e)})
            result = PAYLOAD_OFF
        else:
            result = PAYLOAD_ON
        self.publish_state(connector, result)
        return result

    def _turn_off(self, topic: str, connector: Connector) -> str:
        logger.info({"event": "command_received", "topic": topic, "command": PAYLOAD_OFF})
        try:
            connector.disconnect()
        except Exception as e:  # noqa: BLE001
            logger.error({"event": "command_off_failed", "topic": topic, "error": repr(e)})
            result = PAYLOAD_ON
        else:
            result = PAYLOAD_OFF
        self.publish_state(connector, result)
        return result


__all__ = ["STATE_QOS", "CommandRouter"]
