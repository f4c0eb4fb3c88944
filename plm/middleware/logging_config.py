"""
Logging setup for the PLM service.

Two renderings of the same records:
    - ``PLMJsonFormatter``: one JSON object per line, for log shippers.
    - ``ConsoleFormatter``: short coloured lines for a developer terminal.

Selection follows the environment (JSON unless DEBUG/TESTING) and can be
forced with ``LOG_FORMAT=json|console``. ``LOG_LEVEL`` sets the level.

Services pass domain identifiers through ``extra=``::

    logger.info("Part revised", extra={"part_id": 7, "revision_code": "C"})

``RequestContextFilter`` stamps the current request id onto every record
emitted inside a request, so service logs line up with the access log.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Domain keys rendered when present on a record
DOMAIN_FIELDS = (
    "project_id",
    "part_id",
    "part_number",
    "revision_code",
    "bom_item_id",
    "change_order_id",
    "number",
    "approver_id",
    "actor_id",
    "decision",
    "to_status",
)

# Access-log keys set by plm.middleware.timing
REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms")

# Short labels for the console line, in display order
_CONSOLE_TAGS = (
    ("project_id", "prj"),
    ("part_id", "part"),
    ("revision_code", "rev"),
    ("change_order_id", "co"),
    ("actor_id", "by"),
)


class RequestContextFilter(logging.Filter):
    """Attach ``request_id`` from ``flask.g`` when logging inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class PLMJsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in REQUEST_FIELDS + DOMAIN_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    LEVEL_COLORS = {
        "DEBUG": "\033[2m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = " ".join(
            f"{label}={getattr(record, key)}"
            for key, label in _CONSOLE_TAGS
            if getattr(record, key, None) is not None
        )
        line = f"{color}{stamp} {record.levelname[:4]}{self.RESET} {record.name}: {record.getMessage()}"
        if tags:
            line += f"  [{tags}]"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" {duration:.0f}ms"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _wants_json(app) -> bool:
    forced = os.getenv("LOG_FORMAT", "").lower()
    if forced in ("json", "console"):
        return forced == "json"
    return not (app.config.get("DEBUG") or app.config.get("TESTING"))


def configure_logging(app):
    """Install a single stderr handler on the root logger for *app*.

    Safe to call once per ``create_app()``; earlier handlers are replaced.
    """
    as_json = _wants_json(app)
    level_name = os.getenv("LOG_LEVEL", "INFO" if as_json else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(PLMJsonFormatter() if as_json else ConsoleFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not app.config.get("TESTING"):
        app.logger.info("Logging ready (level=%s, format=%s)", level_name, "json" if as_json else "console")
