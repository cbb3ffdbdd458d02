"""
Per-IP request pacing middleware.

Two rules, both keyed by client IP:
1. Requests arriving closer than ``min_delay_ms`` to the previous one are
   held back by the remaining gap before being processed.
2. More than ``max_requests`` within ``window_seconds`` is rejected with 429.

State lives in a TTLStore, so idle clients age out instead of accumulating.
"""

import asyncio
import time
from typing import Callable, Awaitable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from oapoint.errors import RateLimited
from oapoint.logging_config import get_logger, log_with_context
from oapoint.ratelimit.storage import TTLStore

logger = get_logger("ratelimit")


class RequestPacer:
    """
    Decides, per client, how long to hold a request and whether to reject it.

    State per key: (last_request_time, window_start, count_in_window).
    """

    def __init__(self, storage: TTLStore, min_delay_ms: int = 100,
                 max_requests: int = 300, window_seconds: int = 60,
                 entry_ttl: int = 600, clock=time.monotonic):
        self.storage = storage
        self.min_delay = min_delay_ms / 1000.0
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.entry_ttl = entry_ttl
        self._clock = clock

    def check(self, key: str):
        """
        Register a request for key.

        Returns:
            (allowed, wait_seconds)
        """
        now = self._clock()
        state = self.storage.get(key)
        if state is None:
            self.storage.set(key, (now, now, 1), ttl=self.entry_ttl)
            return True, 0.0

        last, window_start, count = state
        if now - window_start >= self.window_seconds:
            window_start, count = now, 0
        count += 1
        if count > self.max_requests:
            self.storage.set(key, (last, window_start, count), ttl=self.entry_ttl)
            return False, 0.0

        wait = max(0.0, self.min_delay - (now - last))
        self.storage.set(key, (now, window_start, count), ttl=self.entry_ttl)
        return True, wait


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, pacer: RequestPacer, skip_paths: Optional[list] = None):
        super().__init__(app)
        self.pacer = pacer
        self.skip_paths = skip_paths or []

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        client_ip = self._client_ip(request)
        allowed, wait = self.pacer.check(client_ip)

        if not allowed:
            error = RateLimited()
            log_with_context(logger, "WARNING",
                "Rate limit exceeded: {} {}".format(request.method, request.url.path),
                extra_data={"ip": client_ip, "limit": self.pacer.max_requests})
            return JSONResponse(
                status_code=error.status_code,
                content={"detail": error.message, "error": error.code},
                headers={"Retry-After": str(self.pacer.window_seconds)},
            )

        if wait > 0:
            log_with_context(logger, "DEBUG",
                "Delaying request from {} by {:.0f}ms".format(client_ip, wait * 1000),
                extra_data={"ip": client_ip})
            await asyncio.sleep(wait)

        return await call_next(request)
