"""
Curriculum Progress Engine
Blueprint helpers shared by the API blueprints.
"""

import logging

from flask import request

from curriculum.core.exceptions import ENGINE_ERRORS, StoreError
from curriculum.utils.errors import engine_error_response

logger = logging.getLogger(__name__)


def pagination_params(default_limit=50, max_limit=200):
    """Read ``limit``/``offset`` query params.

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset


def current_user(default="system"):
    """Acting user from the ``X-User`` header. Authentication happens upstream."""
    return (request.headers.get("X-User") or "").strip() or default


def register_error_handlers(bp):
    """Answer engine exceptions raised in *bp* with JSON error bodies.

    NotFound → 404, Validation / Transition → 422, AlreadyTerminal → 409,
    StoreError → 503.
    """

    def _handle_engine_error(error):
        if isinstance(error, StoreError):
            logger.error("Store failure in %s endpoint=%s: %s", bp.name, request.endpoint, error)
        return engine_error_response(error)

    for exc_type in ENGINE_ERRORS:
        bp.register_error_handler(exc_type, _handle_engine_error)
    return bp
