import threading
import time
from typing import Callable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        *,
        hsts: bool = False,
        hsts_max_age: int = 15552000,
        referrer_policy: str = "no-referrer",
        x_frame_options: str = "SAMEORIGIN",
    ) -> None:
        super().__init__(app)
        self.hsts = hsts
        self.hsts_max_age = int(hsts_max_age)
        self.referrer_policy = referrer_policy
        self.x_frame_options = x_frame_options

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers["X-Frame-Options"] = self.x_frame_options
        response.headers["Referrer-Policy"] = self.referrer_policy
        response.headers.setdefault("X-DNS-Prefetch-Control", "off")
        response.headers.setdefault("Cross-Origin-Resource-Policy", "same-origin")
        if self.hsts and request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = f"max-age={self.hsts_max_age}; includeSubDomains"
        return response


class FixedWindowRateLimiter:
    """In-memory per-key request counter over fixed windows."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, tuple[float, int]] = {}

    def hit(self, key: str) -> tuple[bool, int]:
        """Count one request; returns (allowed, seconds until the window resets)."""
        now = self.clock()
        with self._lock:
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            if len(self._windows) > 10000:
                self._evict(now)
        retry_after = max(0, int(self.window_seconds - (now - started)))
        return count <= self.limit, retry_after

    def _evict(self, now: float) -> None:
        for key in [k for k, (started, _) in self._windows.items() if now - started >= self.window_seconds]:
            del self._windows[key]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        *,
        limiter: FixedWindowRateLimiter,
        path_prefix: str = "/api/",
        trust_proxy: bool = False,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.path_prefix = path_prefix
        self.trust_proxy = trust_proxy

    def client_key(self, request: Request) -> str:
        forwarded: Optional[str] = request.headers.get("x-forwarded-for") if self.trust_proxy else None
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)
        allowed, retry_after = self.limiter.hit(self.client_key(request))
        if not allowed:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests, please try again later."},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
