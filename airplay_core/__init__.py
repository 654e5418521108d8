"""airplay_core: MQTT-controlled AirPlay speaker bridge for snapcast."""

from __future__ import annotations

from .connector import AirplayConnector, ConnectorState
from .process_pair import (
    ConnectorError,
    ControlChannelError,
    ProcessLaunchError,
    ProcessPair,
)
from .router import CommandRouter

__all__ = [
    "AirplayConnector",
    "CommandRouter",
    "ConnectorError",
    "ConnectorState",
    "ControlChannelError",
    "ProcessLaunchError",
    "ProcessPair",
]
