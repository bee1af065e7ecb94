"""Redlock 分布式锁辅助"""

from contextlib import contextmanager
from typing import Iterable, Optional
import logging

from redlock import Redlock

from marketplace.core.config import settings
from marketplace.core.exceptions import LockConflict

logger = logging.getLogger(__name__)


def inventory_lock_key(product_id: int) -> str:
    return f"lock:inventory:{product_id}"


def order_lock_key(order_id: str) -> str:
    return f"lock:order:{order_id}"


@contextmanager
def redlock_guard(rlock: Optional[Redlock], resources: Iterable[str], ttl: int = None):
    """按固定顺序获取一组分布式锁，退出时全部释放

    未配置 Redlock（例如单元测试）时直接放行，由数据库原子更新兜底。
    """
    locks = []
    try:
        if rlock:
            for resource in sorted(set(resources)):
                lock = rlock.lock(resource, ttl or settings.LOCK_TTL_MS)
                if not lock:
                    logger.warning(f"获取分布式锁失败: {resource}")
                    raise LockConflict(resource=resource)
                locks.append(lock)
        yield
    finally:
        for lock in locks:
            rlock.unlock(lock)
