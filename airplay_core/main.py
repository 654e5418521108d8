"""Main entrypoint for the AirPlay → snapcast bridge.

Allows dynamically joining AirPlay speakers to a snapcast server.
"""

from __future__ import annotations

import argparse
import atexit
import contextlib
import os
import sys

from .addon_config import ConfigError, load_config
from .logging_setup import logger, setup_logging

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2


def _flush_logs() -> None:
    for h in getattr(logger, "handlers", []):
        if hasattr(h, "flush"):
            with contextlib.suppress(OSError, ValueError):
                h.flush()


atexit.register(_flush_logs)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="airplay-snapcast-bridge",
        description="Allows dynamically joining AirPlay speakers to a snapcast server",
    )
    ap.add_argument("-c", "--config", dest="config_file", default=None, help="The path to the config file")
    ap.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    logger.info("airplay_core.main started (PID=%s)", os.getpid())

    try:
        config = load_config(args.config_file)
    except ConfigError as e:
        logger.error({"event": "config_error", "error": str(e)})
        return EXIT_CONFIG
    if args.log_level is None and config.log_level:
        setup_logging(config.log_level)

    try:
        from .bridge_controller import start_bridge_controller

        start_bridge_controller(config)
    except Exception:
        logger.exception("fatal error in main")
        _flush_logs()
        return EXIT_FATAL
    logger.info("main exiting after signal")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
