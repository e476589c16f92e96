from arq.connections import ArqRedis, RedisSettings, create_pool

from labbook.config import get_config


def get_redis_settings() -> RedisSettings:
    """Get Redis settings for the arq queue from configuration."""
    return RedisSettings.from_dsn(get_config().redis_url)


async def get_queue() -> ArqRedis:
    """Create a connection pool to the Redis queue."""
    return await create_pool(get_redis_settings())


async def enqueue(function: str, **kwargs) -> None:
    """Enqueue one job and release the pool."""
    redis = await get_queue()
    try:
        await redis.enqueue_job(function, **kwargs)
    finally:
        await redis.close()
