"""Configuration loading for the AirPlay bridge.

Sources, first hit wins:
- an explicit path (``-c/--config``), YAML or ``.json``
- ``$CONFIG_PATH``
- ``/data/options.json`` (Home Assistant add-on options)
- ``/config/config.yaml``, ``./config.yaml``

Broker settings may be overridden from the environment
(MQTT_HOST, MQTT_PORT, MQTT_USERNAME, MQTT_PASSWORD).
"""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .connector import CONNECTOR_TYPES

logger = logging.getLogger(__name__)

DEFAULT_MQTT_PORT = 1883
DEFAULT_SETTLE_SECONDS = 5.0
DEFAULT_DEVICE_TYPE = "airplay"

ENV_OVERRIDES = {
    "MQTT_HOST": "mqtt_host",
    "MQTT_PORT": "mqtt_port",
    "MQTT_USERNAME": "mqtt_user",
    "MQTT_PASSWORD": "mqtt_pass",
}


class ConfigError(ValueError):
    """Raised when the configuration is missing or invalid."""


@dataclass(frozen=True)
class DeviceConfig:
    name: str
    instance_id: int
    ip_addr: str
    type: str = DEFAULT_DEVICE_TYPE


@dataclass(frozen=True)
class BridgeConfig:
    node_id: str
    mqtt_host: str
    mqtt_port: int = DEFAULT_MQTT_PORT
    mqtt_user: str | None = None
    mqtt_pass: str | None = field(default=None, repr=False)
    discovery_prefix: str | None = None
    settle_seconds: float = DEFAULT_SETTLE_SECONDS
    log_level: str | None = None
    devices: tuple[DeviceConfig, ...] = ()


def _candidate_paths() -> list[Path]:
    paths: list[Path] = []
    env_path = os.environ.get("CONFIG_PATH")
    if env_path:
        paths.append(Path(env_path))
    paths.extend(
        [
            Path("/data/options.json"),
            Path("/config/config.yaml"),
            Path("config.yaml"),
        ]
    )
    return paths


def _read_file(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            if path.suffix == ".json":
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Couldn't open config file {path}: {e}") from e
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Couldn't read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config root is not a mapping: {path}")
    logger.info({"event": "config_loaded", "source": str(path)})
    return data


def load_raw_config(path: str | Path | None = None) -> tuple[dict[str, Any], Path]:
    """Return the raw mapping and the file it came from."""
    if path is not None:
        p = Path(path)
        return _read_file(p), p
    for candidate in _candidate_paths():
        if candidate.exists():
            return _read_file(candidate), candidate
        logger.debug({"event": "config_path_not_found", "path": str(candidate)})
    raise ConfigError("No configuration file found")


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    merged = dict(raw)
    for env_key, cfg_key in ENV_OVERRIDES.items():
        val = os.environ.get(env_key)
        if val:
            merged[cfg_key] = val
            logger.debug({"event": "config_env_override", "key": cfg_key})
    return merged


def _parse_device(raw: Any, index: int) -> DeviceConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"devices[{index}] is not a mapping")
    dev_type = str(raw.get("type") or DEFAULT_DEVICE_TYPE).strip().lower()
    name = raw.get("name")
    if not name:
        raise ConfigError(f"devices[{index}] is missing 'name'")
    ip_addr = raw.get("ip_addr")
    if not ip_addr:
        raise ConfigError(f"devices[{index}] is missing 'ip_addr'")
    try:
        instance_id = int(raw.get("instance_id"))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"devices[{index}] has an invalid 'instance_id'") from e
    if instance_id <= 0:
        raise ConfigError(f"devices[{index}] 'instance_id' must be positive")
    return DeviceConfig(
        name=str(name),
        instance_id=instance_id,
        ip_addr=str(ip_addr).strip(),
        type=dev_type,
    )


def parse_config(raw: dict[str, Any]) -> BridgeConfig:
    """Validate a raw mapping into a BridgeConfig."""
    node_id = str(raw.get("node_id") or "").strip()
    if not node_id:
        raise ConfigError("'node_id' is required")
    mqtt_host = str(raw.get("mqtt_host") or "").strip()
    if not mqtt_host:
        raise ConfigError("'mqtt_host' is required")
    try:
        mqtt_port = int(raw.get("mqtt_port") or DEFAULT_MQTT_PORT)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid 'mqtt_port': {raw.get('mqtt_port')!r}") from e
    try:
        settle = float(raw.get("settle_seconds", DEFAULT_SETTLE_SECONDS))
    except (TypeError, ValueError) as e:
        raise ConfigError("Invalid 'settle_seconds'") from e
    if not math.isfinite(settle) or settle < 0:
        raise ConfigError(f"'settle_seconds' must be a finite non-negative number, got {settle!r}")

    raw_devices = raw.get("devices") or []
    if not isinstance(raw_devices, list):
        raise ConfigError("'devices' must be a list")
    devices: list[DeviceConfig] = []
    seen: set[int] = set()
    for i, item in enumerate(raw_devices):
        dev = _parse_device(item, i)
        if dev.type not in CONNECTOR_TYPES:
            raise ConfigError(f"devices[{i}] has unknown type {dev.type!r}")
        if dev.instance_id in seen:
            raise ConfigError(f"Duplicate instance_id {dev.instance_id}")
        seen.add(dev.instance_id)
        devices.append(dev)

    return BridgeConfig(
        node_id=node_id,
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        mqtt_user=raw.get("mqtt_user") or None,
        mqtt_pass=raw.get("mqtt_pass") or None,
        discovery_prefix=raw.get("discovery_prefix") or None,
        settle_seconds=settle,
        log_level=raw.get("log_level") or None,
        devices=tuple(devices),
    )


def load_config(path: str | Path | None = None) -> BridgeConfig:
    """Load, apply environment overrides and validate the configuration."""
    raw, src = load_raw_config(path)
    cfg = parse_config(_apply_env_overrides(raw))
    logger.info(
        {
            "event": "config_ready",
            "source": str(src),
            "node_id": cfg.node_id,
            "mqtt_host": cfg.mqtt_host,
            "mqtt_port": cfg.mqtt_port,
            "user": bool(cfg.mqtt_user),
            "devices": len(cfg.devices),
        }
    )
    return cfg


__all__ = [
    "BridgeConfig",
    "ConfigError",
    "DeviceConfig",
    "load_config",
    "load_raw_config",
    "parse_config",
]
