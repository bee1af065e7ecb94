"""Redis 连接：库存缓存客户端 + Redlock 分布式锁"""

from typing import Dict, List

from redis import Redis
from redlock import Redlock

from marketplace.core.config import settings


def _timeouts() -> Dict[str, float]:
    return {
        "socket_connect_timeout": settings.REDIS_CONNECT_TIMEOUT,
        "socket_timeout": settings.REDIS_SOCKET_TIMEOUT,
    }


# 惰性连接，首次命令时才建立
redis_client = Redis.from_url(settings.redis_url, decode_responses=True, **_timeouts())


def redlock_servers(hosts: str = None) -> List[Dict]:
    """解析 "host1:6379,host2" 形式的节点列表，缺省端口取 REDIS_PORT"""
    hosts = hosts if hosts is not None else settings.REDIS_HOSTS
    servers = []
    for entry in (hosts or settings.REDIS_HOST).split(","):
        entry = entry.strip()
        if not entry:
            continue
        host, _, port = entry.partition(":")
        servers.append({
            "host": host,
            "port": int(port or settings.REDIS_PORT),
            "db": settings.REDIS_DB,
            **_timeouts(),
        })
    return servers


def create_redlock() -> Redlock:
    return Redlock(redlock_servers())


redlock = create_redlock()

__all__ = ["redis_client", "redlock", "redlock_servers"]
