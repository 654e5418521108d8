import json
import threading

import pytest

from airplay_core.addon_config import BridgeConfig, DeviceConfig
from airplay_core.bridge_controller import BridgeController
from airplay_core.mqtt_dispatcher import EVENT_CONNECTED, EVENT_MESSAGE, BusEvent

CMD = "airplay/100/command"
STATE = "airplay/100/state"
AVAIL = "airplay/availability"


class ScriptedGateway:
    """FakeMQTT plus a scripted event stream for run()."""

    def __init__(self, events=()):
        self.published = []
        self.subscribed = []
        self.script = list(events)
        self.started = False
        self.stopped = False

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))
        return True

    def subscribe(self, topic, qos=0):
        self.subscribed.append((topic, qos))
        return True

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def events(self, stop: threading.Event, poll_interval=1.0):
        for ev in self.script:
            if stop.is_set():
                return
            yield ev

    def on(self, topic):
        return [p for p in self.published if p[0] == topic]


@pytest.fixture
def config():
    return BridgeConfig(
        node_id="airplay",
        mqtt_host="broker",
        devices=(DeviceConfig(name="Living Room", instance_id=100, ip_addr="10.0.0.5"),),
    )


def test_first_connect_announces(config):
    gw = ScriptedGateway()
    ctl = BridgeController(config, gateway=gw)
    ctl.handle_event(BusEvent(EVENT_CONNECTED))
    disc = gw.on("homeassistant/switch/airplay/100/config")
    assert len(disc) == 1
    assert json.loads(disc[0][1])["command_topic"] == CMD
    assert gw.subscribed == [(CMD, 1)]
    assert gw.on(STATE) == [(STATE, "OFF", 1, True)]
    assert gw.published[-1] == (AVAIL, "ON", 1, True)


def test_reconnect_resubscribes_without_rediscovery(config, popen, sleeps):
    gw = ScriptedGateway()
    ctl = BridgeController(config, gateway=gw)
    ctl.handle_event(BusEvent(EVENT_CONNECTED))
    ctl.handle_event(BusEvent(EVENT_MESSAGE, CMD, b"ON"))
    ctl.handle_event(BusEvent(EVENT_CONNECTED))
    assert len(gw.on("homeassistant/switch/airplay/100/config")) == 1
    assert gw.subscribed == [(CMD, 1), (CMD, 1)]
    # current state is re-reported, not reset
    assert gw.on(STATE)[-1] == (STATE, "ON", 1, True)


def test_end_to_end_on_then_off(config, popen, sleeps):
    gw = ScriptedGateway(
        [
            BusEvent(EVENT_CONNECTED),
            BusEvent(EVENT_MESSAGE, CMD, b"ON"),
            BusEvent(EVENT_MESSAGE, CMD, b"OFF"),
        ]
    )
    ctl = BridgeController(config, gateway=gw)
    ctl.run()

    agent = popen.spawned("pw-cli")[0]
    assert 'raop.ip = "10.0.0.5"' in agent.stdin.written[0]
    assert sleeps == [5.0]
    client = popen.spawned("snapclient")[0]
    assert client.args[1:] == ["-i", "100", "-s", "10.0.0.5", "--player", "pulse", "--mixer", "hardware"]
    assert popen.events("terminate") == ["snapclient", "pw-cli"]
    assert [p for p in gw.on(STATE)][:3] == [
        (STATE, "OFF", 1, True),
        (STATE, "ON", 1, True),
        (STATE, "OFF", 1, True),
    ]
    assert gw.started and gw.stopped


def test_shutdown_releases_connected_devices(config, popen, sleeps):
    gw = ScriptedGateway([BusEvent(EVENT_CONNECTED), BusEvent(EVENT_MESSAGE, CMD, b"ON")])
    ctl = BridgeController(config, gateway=gw)
    ctl.run()
    connector = ctl.router.connectors[CMD]
    assert not connector.is_connected
    assert popen.events("wait") == ["snapclient", "pw-cli"]
    assert gw.on(STATE)[-1] == (STATE, "OFF", 1, True)
    assert gw.published[-1] == (AVAIL, "OFF", 1, True)


def test_event_error_does_not_stop_loop(config, popen, sleeps, monkeypatch):
    gw = ScriptedGateway(
        [
            BusEvent(EVENT_MESSAGE, "boom", b"ON"),
            BusEvent(EVENT_MESSAGE, CMD, b"ON"),
        ]
    )
    ctl = BridgeController(config, gateway=gw)
    real = ctl.router.dispatch

    def flaky(topic, payload):
        if topic == "boom":
            raise RuntimeError("unexpected")
        return real(topic, payload)

    monkeypatch.setattr(ctl.router, "dispatch", flaky)
    ctl.run()
    assert (STATE, "ON", 1, True) in gw.on(STATE)


def test_request_stop_ends_run(config):
    gw = ScriptedGateway([BusEvent(EVENT_CONNECTED), BusEvent(EVENT_MESSAGE, CMD, b"TOGGLE")])
    ctl = BridgeController(config, gateway=gw)
    ctl.request_stop(15)
    ctl.run()
    assert ctl.stopping
    assert gw.subscribed == []
    assert gw.stopped
