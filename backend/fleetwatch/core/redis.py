"""
Redis 连接模块

管理 Redis 客户端的创建和关闭，提供全局单例访问。
仅在 store_backend=redis 时由 RedisDocumentStore 使用。
"""
import logging
from typing import Optional

import redis.asyncio as redis

from fleetwatch.core.config import settings

logger = logging.getLogger(__name__)

# 全局 Redis 客户端实例
redis_client: redis.Redis | None = None


async def get_redis(url: Optional[str] = None) -> redis.Redis:
    """获取 Redis 客户端实例，首次调用时按 url（缺省为 settings.redis_url）创建连接。"""
    global redis_client
    if redis_client is None:
        url = url or settings.redis_url
        logger.info("Connecting to Redis at %s", url)
        redis_client = redis.from_url(url, decode_responses=True)
    return redis_client


async def close_redis() -> None:
    """关闭 Redis 连接，释放资源；未创建连接时什么也不做。"""
    global redis_client
    if redis_client is not None:
        await redis_client.close()
        redis_client = None
