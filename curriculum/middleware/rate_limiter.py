"""
Rate limiting configuration.

The Limiter instance is created in curriculum/__init__.py with no default
limits; this module applies limits per route category.

Usage:
    from curriculum.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Bulk pass endpoints touch many records per call.
BULK_PASS_ENDPOINTS = (
    "tracking.bulk_pass",
    "tracking.submit_bulk_pass_job",
)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API routes.

    Limits (per remote IP):
        - Bulk pass:        BULK_PASS_RATE_LIMIT (default 10/minute)
        - Admin tracking:   60/minute
        - Student routes:   200/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bulk_limit = app.config.get("BULK_PASS_RATE_LIMIT", "10/minute")
    for endpoint in BULK_PASS_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view is not None:
            app.view_functions[endpoint] = limiter.limit(bulk_limit)(view)

    bp = app.blueprints.get("tracking")
    if bp:
        limiter.limit("60/minute")(bp)

    for bp_name in ("student", "notification"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("200/minute")(bp)

    health = app.view_functions.get("health")
    if health is not None:
        limiter.exempt(health)

    app.logger.info(
        "Rate limiter configured: bulk pass: %s, tracking: 60/min, student: 200/min",
        bulk_limit,
    )
