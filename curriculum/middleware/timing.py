"""
Per-request timing and request ids.

Every response carries ``X-Request-ID`` (echoed from the request, or minted)
and ``X-Request-Duration-Ms``. Requests slower than SLOW_THRESHOLD_MS log a
warning, 5xx responses log an error, the rest log at DEBUG.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000

# Polled by load balancers; not worth a log line each.
_QUIET_PATHS = frozenset({"/api/v1/health"})


def _request_context(response, duration_ms):
    args = request.view_args or {}
    return {
        "request_id": g.get("request_id", ""),
        "method": request.method,
        "path": request.path,
        "status": response.status_code,
        "duration_ms": duration_ms,
        "remote_addr": request.remote_addr,
        "user": request.headers.get("X-User"),
        "student_id": args.get("student_id"),
        "progress_id": args.get("progress_id"),
    }


def init_request_timing(app: Flask):
    """Attach the timing hooks to *app*."""

    @app.before_request
    def _mark_start():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.request_start = time.perf_counter()

    @app.after_request
    def _stamp_response(response):
        started = g.get("request_start")
        if started is None:
            return response

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in _QUIET_PATHS:
            return response

        if duration_ms > SLOW_THRESHOLD_MS:
            level, label = logging.WARNING, "Slow request"
        elif response.status_code >= 500:
            level, label = logging.ERROR, "Server error"
        else:
            level, label = logging.DEBUG, "Request"
        logger.log(
            level, "%s: %s %s %d (%.0fms)", label, request.method, request.path,
            response.status_code, duration_ms, extra=_request_context(response, duration_ms),
        )
        return response
