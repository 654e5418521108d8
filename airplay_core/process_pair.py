"""PipeWire routing agent + snapclient process pair.

One pair joins one AirPlay speaker to the snapcast pipeline:

1. ``pw-cli`` loads the RAOP discover module with a stream rule matching the
   speaker's address, which declares a sink for it.
2. After a settling interval, ``snapclient`` is started against the speaker
   using the device's instance id as its session id.

Release runs in reverse order: snapclient first, then pw-cli. Each step
signals termination then waits for exit; failures are logged and never stop
the remaining steps. No timeouts are applied to any wait.
"""

from __future__ import annotations

import subprocess
import time
from typing import IO

from .logging_setup import process_logger as logger

PW_CLI = "pw-cli"
SNAPCLIENT = "snapclient"
SETTLE_SECONDS = 5.0

# The address is interpolated as-is; config is trusted input.
RAOP_LOAD_MODULE = (
    "load-module libpipewire-module-raop-discover stream.rules = "
    '[ {{ matches = [ {{ raop.ip = "{ip}" }} ] '
    "actions = {{ create-stream = {{ stream.props = {{ }} }} }} }} ]\n"
)


class ConnectorError(RuntimeError):
    """Base class for failures while bringing a device online."""


class ProcessLaunchError(ConnectorError):
    """An external process could not be spawned."""


class ControlChannelError(ConnectorError):
    """The routing agent's control input could not be written."""


def raop_load_command(ip: str) -> str:
    return RAOP_LOAD_MODULE.format(ip=ip)


def snapclient_args(ip: str, client_id: int) -> list[str]:
    # snapclient -i 100 -s 10.0.0.234 --player pulse --mixer hardware
    return [
        SNAPCLIENT,
        "-i",
        str(client_id),
        "-s",
        ip,
        "--player",
        "pulse",
        "--mixer",
        "hardware",
    ]


def _stop_process(proc: subprocess.Popen, name: str) -> None:
    """Signal termination, then wait for exit. Never raises."""
    try:
        proc.terminate()
    except OSError as e:
        logger.warning({"event": "process_terminate_failed", "process": name, "error": repr(e)})
    try:
        rc = proc.wait()
        logger.debug({"event": "process_exited", "process": name, "returncode": rc})
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning({"event": "process_wait_failed", "process": name, "error": repr(e)})


def start_routing_agent(ip: str) -> subprocess.Popen:
    """Spawn pw-cli and issue the load-module command for ``ip``."""
    try:
        agent = subprocess.Popen(
            [PW_CLI],
            stdin=subprocess.PIPE,
            stdout=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        raise ProcessLaunchError(f"Failed to spawn {PW_CLI}: {e}") from e
    logger.info({"event": "process_started", "process": PW_CLI, "pid": agent.pid, "ip": ip})

    stdin: IO[str] | None = agent.stdin
    try:
        if stdin is None:
            raise ControlChannelError(f"Missing {PW_CLI} stdin")
        try:
            stdin.write(raop_load_command(ip))
            stdin.flush()
        except (OSError, ValueError) as e:
            raise ControlChannelError(f"Couldn't write command to {PW_CLI}: {e}") from e
    except ControlChannelError:
        _stop_process(agent, PW_CLI)
        raise
    return agent


def start_streaming_client(ip: str, client_id: int) -> subprocess.Popen:
    args = snapclient_args(ip, client_id)
    try:
        client = subprocess.Popen(args)
    except (OSError, ValueError, subprocess.SubprocessError) as e:
        raise ProcessLaunchError(f"Failed to spawn {SNAPCLIENT}: {e}") from e
    logger.info(
        {"event": "process_started", "process": SNAPCLIENT, "pid": client.pid, "args": args[1:]}
    )
    return client


class ProcessPair:
    """Owns a running routing agent and streaming client as one unit."""

    def __init__(self, agent: subprocess.Popen, client: subprocess.Popen) -> None:
        self._agent: subprocess.Popen | None = agent
        self._client: subprocess.Popen | None = client

    @classmethod
    def acquire(
        cls,
        ip: str,
        client_id: int,
        settle_seconds: float = SETTLE_SECONDS,
    ) -> ProcessPair:
        """Start both processes or neither.

        Raises ProcessLaunchError or ControlChannelError; on any failure no
        process started here is left running.
        """
        agent = start_routing_agent(ip)
        try:
            # The sink must exist before snapclient tries to play into it.
            time.sleep(settle_seconds)
            client = start_streaming_client(ip, client_id)
        except BaseException:
            _stop_process(agent, PW_CLI)
            raise
        return cls(agent, client)

    @property
    def active(self) -> bool:
        return self._agent is not None or self._client is not None

    @property
    def pids(self) -> tuple[int | None, int | None]:
        return (
            getattr(self._agent, "pid", None),
            getattr(self._client, "pid", None),
        )

    def release(self) -> None:
        """Stop the client, then the agent. Idempotent, never raises."""
        client, self._client = self._client, None
        agent, self._agent = self._agent, None
        if client is not None:
            _stop_process(client, SNAPCLIENT)
        if agent is not None:
            _stop_process(agent, PW_CLI)

    def __enter__(self) -> ProcessPair:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


__all__ = [
    "PW_CLI",
    "SETTLE_SECONDS",
    "SNAPCLIENT",
    "ConnectorError",
    "ControlChannelError",
    "ProcessLaunchError",
    "ProcessPair",
    "raop_load_command",
    "snapclient_args",
    "start_routing_agent",
    "start_streaming_client",
]
