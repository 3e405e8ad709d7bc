import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict

from base import RateLimiterBase
from models import AdmissionDecision


class OpenAdmission(RateLimiterBase):
    """Admits everything; used when rate limiting is not configured."""

    async def admit(self, client_key: str) -> AdmissionDecision:
        return AdmissionDecision.open()


class InMemoryRateLimiter(RateLimiterBase):
    """Sliding-log limiter kept in process memory (single worker, tests)."""

    def __init__(self, limit: int = 50, window_seconds: float = 86_400, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._log: Dict[str, Deque[float]] = {}
        self._lock = asyncio.Lock()

    async def admit(self, client_key: str) -> AdmissionDecision:
        async with self._lock:
            now = self.clock()
            bucket = self._log.setdefault(client_key, deque())

            # Evict requests that left the window
            cutoff = now - self.window_seconds
            while bucket and bucket[0] <= cutoff:
                bucket.popleft()

            allowed = len(bucket) < self.limit
            if allowed:
                bucket.append(now)
            oldest = bucket[0] if bucket else now
            return AdmissionDecision(
                allowed=allowed,
                limit=self.limit,
                remaining=max(0, self.limit - len(bucket)),
                reset=int((oldest + self.window_seconds) * 1000),
            )
