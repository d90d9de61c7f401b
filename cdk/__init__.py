"""Card distribution feature package (claim engine + JSON blueprints)."""

from .admin import create_project_admin_blueprint
from .ratelimit import (
    ADMIN_RATE_LIMITER_KEY,
    RATE_LIMITER_KEY,
    VERIFY_RATE_LIMITER_KEY,
    FixedWindowRateLimiter,
)
from .routes import create_claim_blueprint

__all__ = [
    "ADMIN_RATE_LIMITER_KEY",
    "FixedWindowRateLimiter",
    "RATE_LIMITER_KEY",
    "VERIFY_RATE_LIMITER_KEY",
    "create_claim_blueprint",
    "create_project_admin_blueprint",
]
