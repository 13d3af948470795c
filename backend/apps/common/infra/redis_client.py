"""
Redis 客户端封装：
- 统一读取 settings 中的 Redis 配置，提供频率计数所需的 incr/decr
- 读写失败时记录警告；计数器类操作失败抛 CacheUnavailableError，由调用方决定放行或拒绝
"""

from __future__ import annotations

import os
from typing import Optional

import redis
from django.conf import settings

from apps.common.exceptions import CacheUnavailableError
from apps.common.infra.logger import get_logger, logger_extra

_logger = get_logger(__name__)

_pool: Optional[redis.ConnectionPool] = None


def _get_client() -> redis.Redis:
    """
    获取 Redis 客户端（进程内共享连接池）
    - 连接本身是惰性的，真正的网络错误在命令执行时抛出
    """
    global _pool
    if _pool is None:
        _pool = redis.ConnectionPool(
            host=getattr(settings, "REDIS_HOST", "127.0.0.1"),
            port=int(getattr(settings, "REDIS_PORT", 6379)),
            db=int(getattr(settings, "REDIS_DB_CACHE", 0)),
            password=os.getenv("REDIS_PASSWORD") or None,
            decode_responses=True,
            socket_connect_timeout=float(os.getenv("REDIS_CONNECT_TIMEOUT", 0.2)),
            socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", 0.5)),
        )
    return redis.Redis(connection_pool=_pool)


def incr(key: str, amount: int = 1, ex: Optional[int] = None) -> int:
    """
    自增并可选设置过期时间
    - 仅在计数器首次创建时设置过期，保证固定窗口不会被后续写入续期
    """
    client = _get_client()
    try:
        pipe = client.pipeline()
        pipe.incrby(key, amount)
        if ex:
            pipe.expire(key, ex, nx=True)
        results = pipe.execute()
        return int(results[0])
    except redis.RedisError as exc:
        _logger.warning("Redis 自增失败", extra=logger_extra({"redis_key": key}))
        raise CacheUnavailableError(message="Redis 不可用，计数器失败") from exc


def decr(key: str, amount: int = 1) -> int:
    """自减，用于退还频率计数名额；失败抛 CacheUnavailableError"""
    try:
        return int(_get_client().decrby(key, amount))
    except redis.RedisError as exc:
        _logger.warning("Redis 自减失败", extra=logger_extra({"redis_key": key}))
        raise CacheUnavailableError(message="Redis 不可用，计数器失败") from exc
