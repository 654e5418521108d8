"""
Pytest configuration for the AirPlay bridge tests.

- Ensures the repository root is on sys.path so `import airplay_core` and
  `from tests.helpers...` resolve without an install.
- Replaces process spawning and the settle sleep so no test touches the OS.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = str(Path(__file__).resolve().parent.parent)
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from airplay_core import process_pair  # noqa: E402
from tests.helpers.fakes import FakeMQTT, PopenRecorder  # noqa: E402


@pytest.fixture
def popen(monkeypatch):
    rec = PopenRecorder()
    monkeypatch.setattr(process_pair.subprocess, "Popen", rec)
    return rec


@pytest.fixture
def sleeps(monkeypatch):
    slept = []
    monkeypatch.setattr(process_pair.time, "sleep", lambda s: slept.append(s))
    return slept


@pytest.fixture
def fake_mqtt():
    return FakeMQTT()


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    for key in ("MQTT_HOST", "MQTT_PORT", "MQTT_USERNAME", "MQTT_PASSWORD", "CONFIG_PATH", "LOG_PATH"):
        monkeypatch.delenv(key, raising=False)
