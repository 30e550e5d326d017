"""
Logging setup for the progress engine.

Two output styles share one stderr handler on the root logger:

    JSONFormatter      one JSON object per line, used outside DEBUG/TESTING
    ReadableFormatter  short coloured lines for local development

Request and progress context (``request_id``, ``progress_id``, ``student_id``
and friends) travels through ``logger.x(..., extra={...})`` and is copied
onto the JSON line when present.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "user",
    "admin_id",
    "student_id",
    "course_id",
    "progress_id",
)

# Libraries whose INFO chatter drowns out engine logs.
QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "urllib3")

_ANSI = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "35",
}


def _context(record):
    return {k: getattr(record, k) for k in CONTEXT_FIELDS if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    """Machine-readable lines for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message (progress=12) [37ms]``"""

    def format(self, record: logging.LogRecord) -> str:
        colour = _ANSI.get(record.levelno)
        level = f"{record.levelname:<8}"
        if colour:
            level = f"\033[{colour}m{level}\033[0m"

        parts = [
            datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
            level,
            f"{record.name}: {record.getMessage()}",
        ]
        if getattr(record, "progress_id", None) is not None:
            parts.append(f"(progress={record.progress_id})")
        if getattr(record, "duration_ms", None) is not None:
            parts.append(f"[{record.duration_ms:.0f}ms]")

        line = " ".join(parts)
        if record.exc_info and record.exc_info[0] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _resolve_level(app, verbose):
    name = app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL") or ("DEBUG" if verbose else "INFO")
    return name.upper(), getattr(logging, name.upper(), logging.INFO)


def configure_logging(app):
    """Install the root handler for *app*.

    DEBUG and TESTING apps get readable lines at DEBUG, everything else JSON
    at INFO. ``LOG_LEVEL`` (app config first, then environment) overrides the
    level. Calling this again replaces the handler rather than stacking one.
    """
    testing = bool(app.config.get("TESTING"))
    verbose = testing or bool(app.config.get("DEBUG"))
    level_name, level = _resolve_level(app, verbose)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ReadableFormatter() if verbose else JSONFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info(
            "Logging ready (level=%s, format=%s)", level_name, "readable" if verbose else "json"
        )
