# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Per-client request throttling for the storage server.

Each client IP gets a fixed window of ``rate_limit_requests`` requests per
``rate_limit_window`` seconds.  Going over the limit answers 429 with a
Retry-After header; with ``rate_limit_block`` set, the client is also shut
out for that many seconds.  /health is never throttled because clients
check it before every sync.
"""

import time
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from core.exceptions import RateLimitedError
from core.logger import logger

EXEMPT_PATHS = ("/health",)


@dataclass
class ClientState:
    requests: int = 0
    window_start: float = 0.0
    blocked_until: float = 0.0


class RateLimiter:
    """Fixed-window counter keyed by client IP."""

    def __init__(self, requests: int = 1000, window: float = 60, block: float = 0):
        self.configure(requests, window, block)
        self._clients: Dict[str, ClientState] = {}

    def configure(self, requests: int, window: float, block: float = 0) -> None:
        self.requests = requests
        self.window = window
        self.block = block

    def reset(self) -> None:
        self._clients.clear()

    @staticmethod
    def client_ip(request: Request) -> str:
        return request.client.host if request.client else "unknown"

    def check(self, request: Request) -> tuple[bool, dict]:
        """
        Count one request against its client.

        Returns ``(allowed, info)``; info carries limit/remaining/reset when
        allowed and retry_after when not.
        """
        ip = self.client_ip(request)
        now = time.monotonic()
        state = self._clients.setdefault(ip, ClientState(window_start=now))

        if state.blocked_until > now:
            return False, {"retry_after": max(1, int(state.blocked_until - now + 0.999))}

        if now - state.window_start >= self.window:
            state.requests = 0
            state.window_start = now

        state.requests += 1
        reset = state.window_start + self.window - now

        if state.requests > self.requests:
            wait = reset
            if self.block > 0:
                state.blocked_until = now + self.block
                wait = self.block
            logger.warning("Rate limit exceeded by %s (%d requests in window)", ip, state.requests)
            return False, {"retry_after": max(1, int(wait + 0.999))}

        return True, {
            "limit": self.requests,
            "remaining": self.requests - state.requests,
            "reset": max(0, int(reset)),
        }


rate_limiter = RateLimiter(
    requests=settings.rate_limit_requests,
    window=settings.rate_limit_window,
    block=settings.rate_limit_block,
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.limiter = limiter or rate_limiter

    async def dispatch(self, request: Request, call_next):
        if not settings.rate_limit_enabled or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        allowed, info = self.limiter.check(request)
        if not allowed:
            exc = RateLimitedError()
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.message, "code": exc.code},
                headers={"Retry-After": str(info["retry_after"])},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(info["limit"])
        response.headers["X-RateLimit-Remaining"] = str(info["remaining"])
        response.headers["X-RateLimit-Reset"] = str(info["reset"])
        return response
