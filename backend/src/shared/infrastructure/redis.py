"""Connection pools backing the realtime note channels, one per redis URL."""

from redis.asyncio import ConnectionPool, Redis

from shared.config import settings

_pools: dict[str, ConnectionPool] = {}


def get_redis_pool(url: str | None = None) -> Redis:
    url = url or settings.REDIS_URL
    if url not in _pools:
        _pools[url] = ConnectionPool.from_url(url)
    return Redis(connection_pool=_pools[url])
