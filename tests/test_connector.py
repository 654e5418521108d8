import pytest

from airplay_core import process_pair
from airplay_core.addon_config import DeviceConfig
from airplay_core.connector import (
    CONNECTOR_TYPES,
    AirplayConnector,
    ConnectorState,
    build_connector,
)
from airplay_core.process_pair import ProcessLaunchError
from airplay_core.types import Connector
from tests.helpers.fakes import PopenRecorder


def make_connector():
    return AirplayConnector("10.0.0.5", 100, "airplay/100/state")


def test_initial_state_is_disconnected():
    c = make_connector()
    assert c.state is ConnectorState.DISCONNECTED
    assert not c.is_connected
    assert isinstance(c, Connector)


def test_connect_twice_acquires_once(popen, sleeps):
    c = make_connector()
    c.connect()
    c.connect()
    assert c.state is ConnectorState.CONNECTED
    assert popen.events("spawn") == ["pw-cli", "snapclient"]
    assert len(sleeps) == 1


def test_disconnect_twice_releases_once(popen, sleeps):
    c = make_connector()
    c.connect()
    c.disconnect()
    c.disconnect()
    assert popen.events("terminate") == ["snapclient", "pw-cli"]
    assert c.state is ConnectorState.DISCONNECTED


def test_disconnect_when_never_connected_is_noop(popen):
    c = make_connector()
    c.disconnect()
    assert popen.journal == []
    assert not c.is_connected


def test_failed_client_start_leaves_disconnected(monkeypatch, sleeps):
    rec = PopenRecorder(fail_on={"snapclient"})
    monkeypatch.setattr(process_pair.subprocess, "Popen", rec)
    c = make_connector()
    with pytest.raises(ProcessLaunchError):
        c.connect()
    assert c.state is ConnectorState.DISCONNECTED
    assert rec.spawned("pw-cli")[0].terminated
    # a later retry starts from scratch
    rec.fail_on.clear()
    c.connect()
    assert c.is_connected
    assert len(rec.spawned("pw-cli")) == 2


def test_disconnect_succeeds_even_when_stops_fail(monkeypatch, sleeps):
    rec = PopenRecorder(
        process_opts={
            "snapclient": {"fail_terminate": True, "fail_wait": True},
            "pw-cli": {"fail_terminate": True, "fail_wait": True},
        }
    )
    monkeypatch.setattr(process_pair.subprocess, "Popen", rec)
    c = make_connector()
    c.connect()
    c.disconnect()
    assert c.state is ConnectorState.DISCONNECTED
    assert c._pair is None
    assert rec.events("wait") == ["snapclient", "pw-cli"]


def test_disconnect_detaches_before_release(popen, sleeps, monkeypatch):
    c = make_connector()
    c.connect()
    pair = c._pair

    def boom():
        raise RuntimeError("unexpected")

    monkeypatch.setattr(pair, "release", boom)
    with pytest.raises(RuntimeError):
        c.disconnect()
    assert not c.is_connected


def test_close_releases(popen, sleeps):
    c = make_connector()
    c.connect()
    c.close()
    assert not c.is_connected
    assert popen.events("wait") == ["snapclient", "pw-cli"]


def test_settle_seconds_passed_through(popen, sleeps):
    c = AirplayConnector("10.0.0.5", 100, "airplay/100/state", settle_seconds=0.5)
    c.connect()
    assert sleeps == [0.5]


def test_state_payload_values():
    assert ConnectorState.CONNECTED.value == "ON"
    assert ConnectorState.DISCONNECTED.value == "OFF"


def test_build_connector_from_device():
    dev = DeviceConfig(name="Kitchen", instance_id=7, ip_addr="10.0.0.7")
    c = build_connector(dev, "n/7/state", 1.0)
    assert isinstance(c, AirplayConnector)
    assert (c.ip, c.client_id, c.state_topic, c.settle_seconds) == ("10.0.0.7", 7, "n/7/state", 1.0)
    assert "airplay" in CONNECTOR_TYPES


def test_build_connector_unknown_type():
    dev = DeviceConfig(name="x", instance_id=1, ip_addr="1.2.3.4", type="chromecast")
    with pytest.raises(ValueError, match="chromecast"):
        build_connector(dev, "n/1/state")
