import threading
import time
from typing import Callable, Dict

from fastapi import HTTPException, Request, status

from core.config import settings

CLEANUP_AFTER_RECORDS = 1000


class RateLimiter:
    """Fixed-window request counter per client identifier.

    Single-process only; every worker keeps its own windows.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._records: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def check(self, identifier: str) -> bool:
        now = self._clock()
        with self._lock:
            record = self._records.get(identifier)
            if not record or now > record["reset_at"]:
                self._records[identifier] = {"count": 1, "reset_at": now + self.window_seconds}
                return True
            if record["count"] >= self.max_requests:
                return False
            record["count"] += 1
            return True

    def cleanup(self) -> int:
        """Drop expired windows; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, r in self._records.items() if now > r["reset_at"]]
            for k in expired:
                del self._records[k]
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


rate_limiter = RateLimiter(
    max_requests=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window_seconds,
)


def client_identifier(request: Request) -> str:
    # X-Forwarded-For is client-controlled unless a proxy we run overwrites it
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
    client = request.client
    return client.host if client else "unknown"


async def enforce_rate_limit(request: Request) -> None:
    if len(rate_limiter) > CLEANUP_AFTER_RECORDS:
        rate_limiter.cleanup()
    if not rate_limiter.check(client_identifier(request)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
