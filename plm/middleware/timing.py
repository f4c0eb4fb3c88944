"""
Access log and request correlation.

Every response carries ``X-Request-ID`` (the caller's, or a fresh one) and
``X-Request-Duration-Ms``. Requests slower than ``PLM_SLOW_REQUEST_MS`` are
logged at WARNING, 5xx at ERROR, the rest at DEBUG. Health probes are not
logged at all.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

_QUIET_PREFIX = "/api/v1/health/"

DEFAULT_SLOW_REQUEST_MS = 1000


def _request_id() -> str:
    incoming = (request.headers.get("X-Request-ID") or "").strip()
    return incoming[:64] if incoming else uuid.uuid4().hex[:12]


def init_request_timing(app: Flask):
    """Register the start/finish hooks on *app*."""

    @app.before_request
    def _begin():
        g.request_id = _request_id()
        g.started_at = time.perf_counter()

    @app.after_request
    def _finish(response):
        started = g.get("started_at")
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path.startswith(_QUIET_PREFIX):
            return response

        view_args = request.view_args or {}
        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": elapsed_ms,
            "project_id": view_args.get("project_id"),
            "part_id": view_args.get("part_id"),
            "change_order_id": view_args.get("co_id"),
            "actor_id": request.headers.get("X-User-Id"),
        }
        slow_ms = current_app.config.get("PLM_SLOW_REQUEST_MS", DEFAULT_SLOW_REQUEST_MS)
        summary = "%s %s -> %d"
        args = (request.method, request.path, response.status_code)
        if response.status_code >= 500:
            logger.error(summary, *args, extra=extra)
        elif elapsed_ms > slow_ms:
            logger.warning("Slow request: " + summary, *args, extra=extra)
        else:
            logger.debug(summary, *args, extra=extra)
        return response
