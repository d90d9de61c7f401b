"""Fixed-window request counter keyed by claimant identity."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from flask import current_app, request

from .responses import error_response

RATE_LIMITER_KEY = "cdk_claim_rate_limiter"
VERIFY_RATE_LIMITER_KEY = "cdk_verify_rate_limiter"
ADMIN_RATE_LIMITER_KEY = "cdk_admin_rate_limiter"


class FixedWindowRateLimiter:
    """In-process limiter; each key gets ``limit`` hits per ``window_seconds``."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = max(1, int(limit))
        self.window_seconds = max(1, int(window_seconds))
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> Tuple[bool, int]:
        """Count one request; returns (allowed, retry_after_seconds)."""
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(key, (0, now + self.window_seconds))
            if reset_at <= now:
                count, reset_at = 0, now + self.window_seconds
            count += 1
            self._windows[key] = (count, reset_at)
            if len(self._windows) > 10_000:
                self._prune(now)

        if count > self.limit:
            return False, max(1, int(reset_at - now + 0.999))
        return True, 0

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if reset_at <= now]
        for key in expired:
            del self._windows[key]


def rate_limited_response(
    extension_key: str,
    key: str,
    message: str = "Too many requests, please slow down.",
) -> Optional[tuple]:
    """Count one hit on the app's limiter; returns a 429 response once the key is over its limit."""
    limiter = current_app.extensions.get(extension_key)
    if limiter is None:
        return None
    allowed, retry_after = limiter.hit(key)
    if allowed:
        return None

    current_app.logger.warning("Rate limit hit on %s %s", request.method, request.path)
    response, status = error_response(message, 429, retryAfter=retry_after)
    response.headers["Retry-After"] = str(retry_after)
    return response, status
