"""Logging for the agent core.

Loggers returned by :func:`get_logger` accept a ``data=`` mapping that is
attached to the record. Both formatters pull the active run id and workflow
from :data:`run_context` and pass ``data`` through :func:`redact_sensitive_data`
before it is written anywhere.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Iterator, Optional, Set

run_context: ContextVar[Dict[str, Any]] = ContextVar("run_context", default={})

# Substrings of lowercased keys whose values are masked
SENSITIVE_KEYS: Set[str] = {
    "authorization",
    "api_key",
    "apikey",
    "password",
    "secret",
    "token",
}

# Mappings masked wholesale; MCP server env blocks carry resolved secrets
SENSITIVE_MAPPINGS: Set[str] = {"env"}

_KEEP_CHARS = 3
_MIN_PARTIAL_LENGTH = 12


def _mask(value: Any) -> str:
    if not isinstance(value, str):
        return "[REDACTED]"
    if len(value) < _MIN_PARTIAL_LENGTH:
        return "<REDACTED>"
    return value[:_KEEP_CHARS] + "***" + value[-_KEEP_CHARS:]


def _looks_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def redact_sensitive_data(data: Any) -> Any:
    """Return a copy of ``data`` with credentials masked.

    Values under credential-like keys keep at most their first and last few
    characters. Every value of an ``env`` mapping is masked regardless of
    its key. Lists and tuples come back as lists.
    """
    if isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    if not isinstance(data, dict):
        return data

    cleaned: Dict[Any, Any] = {}
    for key, value in data.items():
        name = str(key)
        if isinstance(value, dict) and name.lower() in SENSITIVE_MAPPINGS:
            cleaned[key] = {k: _mask(v) for k, v in value.items()}
        elif _looks_sensitive(name):
            cleaned[key] = _mask(value)
        else:
            cleaned[key] = redact_sensitive_data(value)
    return cleaned


def _record_data(record: logging.LogRecord) -> Optional[Any]:
    data = getattr(record, "data", None)
    return redact_sensitive_data(data) if data else None


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        ctx = run_context.get()
        if ctx:
            entry.update(run_id=ctx.get("run_id"), workflow=ctx.get("workflow"))

        data = _record_data(record)
        if data is not None:
            entry["data"] = data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Pipe-separated single line with a coloured level and short run id."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        run_id = run_context.get().get("run_id") or "-"
        level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{record.levelname:8}{self.RESET}"
        parts = [
            datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            level,
            run_id[:8],
            record.name,
            record.getMessage(),
        ]
        data = _record_data(record)
        if data is not None:
            parts.append(str(data))

        line = " | ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class ContextLogger(logging.LoggerAdapter):
    """Adapter moving a ``data=`` keyword into the record's extras."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        data = kwargs.pop("data", None)
        if data is not None:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "data": data}
        return msg, kwargs


@lru_cache(maxsize=None)
def get_logger(name: str) -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {})


@contextmanager
def bind_run_context(run_id: str, workflow: str) -> Iterator[None]:
    """Attach ``run_id``/``workflow`` to every record logged inside the block."""
    token = run_context.set({"run_id": run_id, "workflow": workflow})
    try:
        yield
    finally:
        run_context.reset(token)


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Install stderr (and optional JSONL file) handlers on the root logger.

    stdout is left alone: in a stdio MCP process it carries protocol frames.
    """
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(StructuredFormatter() if json_output else ConsoleFormatter())
    handlers: list = [stream]
    if log_file:
        sink = logging.FileHandler(log_file)
        sink.setFormatter(StructuredFormatter())
        handlers.append(sink)

    root = logging.getLogger()
    root.handlers[:] = handlers
    root.setLevel(level.upper())
    logging.getLogger("asyncio").setLevel(logging.WARNING)
