import redis.asyncio as redis

class RedisClient:
    """Access tokens and rate-limit counters. Built once at startup."""

    def __init__(self, url: str):
        self.redis = redis.from_url(url, encoding="utf-8", decode_responses=True)

    async def set_token(self, token: str, value: str, expire: int):
        await self.redis.set(f"token:{token}", value, ex=expire)

    async def get_token(self, token: str) -> str | None:
        return await self.redis.get(f"token:{token}")

    async def delete_token(self, token: str):
        await self.redis.delete(f"token:{token}")

    async def hit(self, key: str, window_seconds: int) -> int:
        """Increment a fixed-window counter and return its new value."""
        counter_key = f"ratelimit:{key}"
        count = await self.redis.incr(counter_key)
        if count == 1:
            await self.redis.expire(counter_key, window_seconds)
        return count

    async def ping(self) -> bool:
        return await self.redis.ping()

    async def close(self):
        await self.redis.close()
