"""Structured logging for the AirPlay bridge.

Dict messages are emitted as single JSON lines (``{"event": ...}``); plain
strings pass through unchanged. Secrets that look like ``password=...`` are
redacted before anything reaches the stream.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys

# Expanded redaction pattern
REDACT = re.compile(
    r"(?i)[\"']?\b(pass(word)?|mqtt_pass|token|apikey|api_key|secret|bearer)\b"
    r"[\"']?\s*[:=]\s*[\"']?([^\"',\s]+)[\"']?"
)


def redact(s: str) -> str:
    return REDACT.sub(lambda m: f"{m.group(1)}=***REDACTED***", s)


class JsonRedactingHandler(logging.StreamHandler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = record.msg
            if isinstance(msg, dict):
                line = json.dumps(msg, default=str)
            else:
                line = record.getMessage()
            line = redact(line)
            if record.exc_info:
                line = f"{line}\n{self.formatException(record.exc_info)}"
            stream = self.stream if hasattr(self, "stream") else sys.stderr
            stream.write(line + "\n")
            self.flush()
        except Exception:  # noqa: BLE001
            self.handleError(record)

    def formatException(self, exc_info) -> str:  # noqa: N802
        return logging.Formatter().formatException(exc_info)


LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Module qualified logger names keep records attributable in tests.
logger = logging.getLogger("airplay_core")
bridge_logger = logging.getLogger("airplay_core.bridge")
process_logger = logging.getLogger("airplay_core.process")


def get_log_level(override: str | None = None) -> int:
    """Resolve the numeric log level.

    Checks, in order: the explicit override, LOG_LEVEL, AIRPLAY_LOG_LEVEL.
    Falls back to INFO for missing or unknown names.
    """
    lvl = (
        override
        or os.environ.get("LOG_LEVEL")
        or os.environ.get("AIRPLAY_LOG_LEVEL")
    )
    if not lvl:
        return logging.INFO
    return LOG_LEVEL_MAP.get(str(lvl).strip().upper(), logging.INFO)


def _file_handler() -> logging.Handler | None:
    path = os.environ.get("LOG_PATH")
    if not path:
        return None
    try:
        fh = logging.FileHandler(path)
    except OSError as e:
        logger.warning({"event": "log_path_fallback", "target": "stderr", "error": str(e)})
        return None
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s:%(name)s: %(message)s"))
    return fh


def setup_logging(level: str | int | None = None) -> int:
    """(Re)initialize the package logger; returns the numeric level applied."""
    numeric_level = level if isinstance(level, int) else get_log_level(level)
    logger.setLevel(numeric_level)
    # Deduplicate handlers on restart
    logger.handlers.clear()
    handler = JsonRedactingHandler()
    handler.setLevel(numeric_level)
    logger.addHandler(handler)
    fh = _file_handler()
    if fh is not None:
        fh.setLevel(numeric_level)
        logger.addHandler(fh)
    # Children (bridge, process) propagate into the package logger.
    for child in (bridge_logger, process_logger):
        child.handlers.clear()
        child.propagate = True
    return numeric_level


__all__ = [
    "LOG_LEVEL_MAP",
    "JsonRedactingHandler",
    "bridge_logger",
    "get_log_level",
    "logger",
    "process_logger",
    "redact",
    "setup_logging",
]
