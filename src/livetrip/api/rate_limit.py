"""Request throttling for driver actions and live connections.

HTTP actions go through slowapi, keyed per credential (hashed, so raw
tokens never sit in limiter storage) and per client address otherwise.
WebSocket handshakes bypass slowapi and use ``ConnectRateLimiter``.
"""

import hashlib
import time
from collections import deque

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .auth import extract_bearer_token

ACTION_LIMIT = "30/minute"
WS_CONNECTS_PER_WINDOW = 10
WS_WINDOW_SECONDS = 60.0


def credential_key(token: str) -> str:
    return "token:" + hashlib.sha256(token.encode()).hexdigest()[:16]


def get_token_or_ip(request: Request) -> str:
    token = extract_bearer_token(request)
    if token:
        return credential_key(token)
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=get_token_or_ip)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """429 in the API's error shape, with Retry-After set to the limit window."""
    retry_after = exc.limit.limit.get_expiry()
    response = JSONResponse(
        status_code=429,
        content={"error": f"Rate limit exceeded: {exc.detail}", "details": {}},
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


class ConnectRateLimiter:
    """Sliding-window count of WebSocket handshakes per key."""

    def __init__(self, max_connects: int, window_seconds: float) -> None:
        self.max_connects = max_connects
        self.window_seconds = window_seconds
        self._recent: dict[str, deque[float]] = {}
        self._next_sweep = 0.0

    def allow(self, key: str) -> bool:
        """Record a handshake attempt; False once the window is full."""
        now = time.monotonic()
        if now >= self._next_sweep:
            self._sweep(now)

        recent = self._recent.setdefault(key, deque())
        while recent and recent[0] <= now - self.window_seconds:
            recent.popleft()
        if len(recent) >= self.max_connects:
            return False
        recent.append(now)
        return True

    def _sweep(self, now: float) -> None:
        """Forget keys with no handshake left inside the window."""
        cutoff = now - self.window_seconds
        for key, recent in list(self._recent.items()):
            if not recent or recent[-1] <= cutoff:
                del self._recent[key]
        self._next_sweep = now + self.window_seconds

    def tracked_keys(self) -> int:
        return len(self._recent)

    def reset(self) -> None:
        self._recent.clear()
        self._next_sweep = 0.0


ws_limiter = ConnectRateLimiter(WS_CONNECTS_PER_WINDOW, WS_WINDOW_SECONDS)
