LIMITERS = {
    "RedisRateLimiter": "limiter.redis_impl",
    "InMemoryRateLimiter": "limiter.memory_impl",
    "OpenAdmission": "limiter.memory_impl",
}
