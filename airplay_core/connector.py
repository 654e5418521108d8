"""Per-device connection lifecycle.

AirplayConnector is a two-state machine around an optional ProcessPair:
DISCONNECTED (no pair held) and CONNECTED (pair held). Both operations are
idempotent. Callers must serialize calls on a given connector; the bridge
does so by dispatching from a single control thread.
"""

from __future__ import annotations

import logging
from enum import Enum

from .process_pair import SETTLE_SECONDS, ConnectorError, ProcessPair
from .topics import PAYLOAD_OFF, PAYLOAD_ON
from .types import ConnectorFactory

logger = logging.getLogger(__name__)


class ConnectorState(Enum):
    DISCONNECTED = PAYLOAD_OFF
    CONNECTED = PAYLOAD_ON


class AirplayConnector:
    def __init__(
        self,
        ip: str,
        client_id: int,
        state_topic: str,
        settle_seconds: float = SETTLE_SECONDS,
    ) -> None:
        self.ip = ip
        self.client_id = client_id
        self.state_topic = state_topic
        self.settle_seconds = settle_seconds
        self._pair: ProcessPair | None = None

    def __repr__(self) -> str:
        return (
            f"AirplayConnector(ip={self.ip!r}, client_id={self.client_id}, "
            f"state={self.state.name})"
        )

    @property
    def state(self) -> ConnectorState:
        return ConnectorState.CONNECTED if self._pair is not None else ConnectorState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self._pair is not None

    def connect(self) -> None:
        """Bring the speaker online; no-op when already connected.

        Raises ConnectorError (ProcessLaunchError / ControlChannelError) when
        acquisition fails, leaving the connector disconnected.
        """
        if self._pair is not None:
            logger.debug({"event": "connector_connect_noop", "client_id": self.client_id})
            return
        logger.info({"event": "connector_connecting", "client_id": self.client_id, "ip": self.ip})
        try:
            self._pair = ProcessPair.acquire(self.ip, self.client_id, self.settle_seconds)
        except ConnectorError as e:
            logger.error(
                {
                    "event": "connector_connect_failed",
                    "client_id": self.client_id,
                    "ip": self.ip,
                    "error": str(e),
                }
            )
            raise
        logger.info(
            {
                "event": "connector_connected",
                "client_id": self.client_id,
                "pids": self._pair.pids,
            }
        )

    def disconnect(self) -> None:
        """Take the speaker offline; no-op when already disconnected.

        Release is best effort: stop failures are logged by the pair, and the
        connector is DISCONNECTED afterwards regardless.
        """
        pair, self._pair = self._pair, None
        if pair is None:
            logger.debug({"event": "connector_disconnect_noop", "client_id": self.client_id})
            return
        pair.release()
        logger.info({"event": "connector_disconnected", "client_id": self.client_id})

    def close(self) -> None:
        """Release everything held; called at shutdown."""
        self.disconnect()


def _airplay_factory(device, state_topic: str, settle_seconds: float) -> AirplayConnector:
    return AirplayConnector(device.ip_addr, device.instance_id, state_topic, settle_seconds)


# Config ``type`` tag -> connector factory.
CONNECTOR_TYPES: dict[str, ConnectorFactory] = {
    "airplay": _airplay_factory,
}


def build_connector(device, state_topic: str, settle_seconds: float = SETTLE_SECONDS):
    try:
        factory = CONNECTOR_TYPES[device.type]
    except KeyError:
        raise ValueError(f"Unknown device type: {device.type!r}") from None
    return factory(device, state_topic, settle_seconds)


__all__ = [
    "CONNECTOR_TYPES",
    "AirplayConnector",
    "ConnectorState",
    "build_connector",
]
