"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in marketgc/__init__.py with no default
limits; this module applies limits per route category.

Usage:
    from marketgc.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Scan and cleanup touch whole tables; keep operators from hammering them
GC_WRITE_LIMIT = "30/minute"
GC_READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Garbage collector: 30/minute on mutating routes, 200/minute on reads
        - Health checks:     exempt

    Rate limiting is disabled in testing mode or with RATELIMIT_ENABLED=False.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    bp = app.blueprints.get("garbage_collector")
    if bp:
        limiter.limit(GC_WRITE_LIMIT, methods=["POST", "PUT"])(bp)
        limiter.limit(GC_READ_LIMIT, methods=["GET"])(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: gc write=%s, gc read=%s",
                    GC_WRITE_LIMIT, GC_READ_LIMIT)
