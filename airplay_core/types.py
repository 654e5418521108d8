# airplay_core/types.py
from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

# NB: Avoid importing any local modules at runtime to prevent cycles.


# ---------------------------
# Minimal external client surfaces
# ---------------------------
@runtime_checkable
class Publisher(Protocol):
    """What the router and bootstrap need from the bus."""

    def publish(
        self,
        topic: str,
        payload: str,
        qos: int = ...,
        retain: bool = ...,
    ) -> bool: ...

    def subscribe(self, topic: str, qos: int = ...) -> bool: ...


# ---------------------------
# Device abstractions
# ---------------------------
@runtime_checkable
class Connector(Protocol):
    """A device that can be switched on and off and reports on a state topic.

    ``connect`` raises ConnectorError on failure; ``disconnect`` and ``close``
    never raise.
    """

    state_topic: str

    @property
    def is_connected(self) -> bool: ...

    def connect(self) -> None: ...
    def disconnect(self) -> None: ...
    def close(self) -> None: ...


# Builds a connector from (device config, state topic, settle seconds).
ConnectorFactory = Callable[[Any, str, float], Connector]


__all__ = [
    "Connector",
    "ConnectorFactory",
    "Publisher",
]
