"""
ShareNotes Backend — Rate Limiting Middleware
===============================================

What:  Per-IP sliding window request limit.
How:   SlidingWindowLimiter keeps recent request timestamps per client; the
       middleware asks it before forwarding and answers 429 with Retry-After
       when the window is full.

The limiter is in-process state. Several workers each enforce their own
window, so the effective limit scales with the worker count.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from sharenotes.config import settings
from sharenotes.exceptions import RateLimitExceededError
from sharenotes.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """
    Counts requests per key over the last `window` seconds.

    hit() records a request and returns None, or returns the number of
    seconds until the oldest request leaves the window when the key is full.
    """

    def __init__(self, limit: int, window: int, sweep_every: int = 1000):
        self.limit = limit
        self.window = window
        self._sweep_every = sweep_every
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._since_sweep = 0

    def _expire(self, key: str, now: float) -> Deque[float]:
        stamps = self._hits[key]
        cutoff = now - self.window
        while stamps and stamps[0] <= cutoff:
            stamps.popleft()
        return stamps

    def hit(self, key: str, now: Optional[float] = None) -> Optional[int]:
        now = time.time() if now is None else now
        stamps = self._expire(key, now)

        if len(stamps) >= self.limit:
            return int(stamps[0] + self.window - now) + 1

        stamps.append(now)
        self._since_sweep += 1
        if self._since_sweep >= self._sweep_every:
            self.sweep(now)
        return None

    def sweep(self, now: float) -> None:
        """Forget clients with nothing left in the window."""
        idle = [key for key in list(self._hits) if not self._expire(key, now)]
        for key in idle:
            del self._hits[key]
        self._since_sweep = 0
        if idle:
            logger.debug("Rate limiter dropped %d idle clients", len(idle))

    def tracked_clients(self) -> int:
        return len(self._hits)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Applies SlidingWindowLimiter to every request outside EXCLUDED_PATHS."""

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, limiter: Optional[SlidingWindowLimiter] = None):
        super().__init__(app)
        self.limiter = limiter or SlidingWindowLimiter(
            limit=settings.rate_limit_requests,
            window=settings.rate_limit_window,
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        retry_after = self.limiter.hit(client_ip)
        if retry_after is None:
            return await call_next(request)

        logger.warning(
            "Rate limit exceeded for IP %s (%d requests / %ds)",
            client_ip,
            self.limiter.limit,
            self.limiter.window,
        )
        # Raised exceptions do not reach the app's handlers from here
        exc = RateLimitExceededError(retry_after=retry_after)
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "details": exc.context,
                "request_id": request_id_var.get(""),
            },
            headers={"Retry-After": str(exc.retry_after)},
        )
