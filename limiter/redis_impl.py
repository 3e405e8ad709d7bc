import logging
import time
import uuid
from typing import Callable, Optional

import redis
import redis.asyncio as aioredis

from base import RateLimiterBase
from models import AdmissionDecision


class RedisRateLimiter(RateLimiterBase):
    """Sliding-log limiter on a Redis sorted set, one set per client key."""

    def __init__(
        self,
        url: Optional[str] = None,
        limit: int = 50,
        window_seconds: int = 86_400,
        client: Optional[aioredis.Redis] = None,
        clock: Callable[[], float] = time.time,
    ):
        if client is None and not url:
            raise ValueError("RedisRateLimiter needs a url or a client")
        self._r = client or aioredis.Redis.from_url(url, decode_responses=True)
        self.limit = limit
        self.window_ms = int(window_seconds * 1000)
        self.clock = clock
        self.logger = logging.getLogger("app")

    async def admit(self, client_key: str) -> AdmissionDecision:
        now_ms = int(self.clock() * 1000)
        member = f"{now_ms}-{uuid.uuid4().hex}"
        try:
            async with self._r.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(client_key, 0, now_ms - self.window_ms)
                pipe.zadd(client_key, {member: now_ms})
                pipe.zcard(client_key)
                pipe.zrange(client_key, 0, 0, withscores=True)
                pipe.pexpire(client_key, self.window_ms)
                _, _, count, oldest, _ = await pipe.execute()
            allowed = count <= self.limit
            if not allowed:
                # rejected requests don't consume the window
                await self._r.zrem(client_key, member)
        except redis.RedisError as e:
            self.logger.warning(
                f"Rate limit store unavailable ({e}); admitting request",
                extra={"extra_data": {"client_key": client_key, "error_kind": type(e).__name__}},
            )
            return AdmissionDecision.open()

        oldest_ms = int(oldest[0][1]) if oldest else now_ms
        return AdmissionDecision(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset=oldest_ms + self.window_ms,
        )

    async def aclose(self) -> None:
        await self._r.aclose()
