# Structured JSON logging for trip-intel, shaped for Loki/Promtail ingestion

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional

SERVICE_NAME = os.getenv("SERVICE_NAME", "tripintel")
ENV = os.getenv("APP_ENV", "dev")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Promtail tails this file when set; stdout is always on
LOG_FILE = os.getenv("LOG_FILE", "")

# One id per ingest run ("run-...") or HTTP request ("req-...")
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord carries, whatever the Python version
_RESERVED_LOG_FIELDS: FrozenSet[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class LokiJSONFormatter(logging.Formatter):
    """
    One JSON object per line:

        {"ts": "...Z", "level": "INFO", "logger": "tripintel.trigger",
         "service": "tripintel", "env": "dev", "message": "ingest_state",
         "correlation_id": "run-...", "from_state": "...", ...}

    Anything passed through ``extra=`` lands at the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "service": SERVICE_NAME,
            "env": ENV,
            "message": record.getMessage(),
        }
        cid = _correlation_id.get()
        if cid:
            line["correlation_id"] = cid

        line.update(
            (k, v)
            for k, v in record.__dict__.items()
            if not k.startswith("_") and k not in _RESERVED_LOG_FIELDS and k not in line
        )
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


def _file_handler(path: str, formatter: logging.Formatter) -> Optional[logging.Handler]:
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handler = logging.FileHandler(path)
    except OSError as e:
        logging.getLogger(__name__).error("log file %s unavailable, stdout only: %s", path, e)
        return None
    handler.setFormatter(formatter)
    return handler


def configure_logging() -> None:
    """Install the JSON formatter on the root logger. Safe to call more than once."""
    root = logging.getLogger()
    if getattr(root, "_tripintel_configured", False):
        return

    root.setLevel(LOG_LEVEL)
    formatter = LokiJSONFormatter()

    stdout = logging.StreamHandler(sys.stdout)
    stdout.setFormatter(formatter)
    root.addHandler(stdout)

    if LOG_FILE:
        handler = _file_handler(LOG_FILE, formatter)
        if handler is not None:
            root.addHandler(handler)

    root._tripintel_configured = True  # type: ignore[attr-defined]


def new_correlation_id(prefix: str = "") -> str:
    cid = f"{prefix}{uuid.uuid4().hex}"
    _correlation_id.set(cid)
    return cid


def set_correlation_id(cid: Optional[str]) -> None:
    _correlation_id.set(cid)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """
    Emit ``event`` as the message with ``fields`` as structured attributes.

    Field names that clash with LogRecord attributes get a ``field_`` prefix
    (``filename`` -> ``field_filename``) instead of raising KeyError.
    """
    extra = {(f"field_{k}" if k in _RESERVED_LOG_FIELDS else k): v for k, v in fields.items()}
    extra["event"] = event
    logger.log(level, event, extra=extra)


class TripIntelLogger:
    """Named logger plus stage timers scoped to the current correlation id."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.timers: Dict[str, float] = {}

    def event(self, event: str, level: int = logging.INFO, **fields: Any) -> None:
        log_event(self.logger, event, level=level, **fields)

    def _timer_key(self, name: str) -> str:
        return f"{_correlation_id.get() or 'global'}:{name}"

    def start_timer(self, name: str) -> None:
        self.timers[self._timer_key(name)] = time.perf_counter()

    def end_timer(self, name: str) -> float:
        """Seconds since start_timer(name); 0.0 if it was never started."""
        start = self.timers.pop(self._timer_key(name), None)
        return 0.0 if start is None else time.perf_counter() - start


def get_logger(name: str) -> TripIntelLogger:
    return TripIntelLogger(name)
