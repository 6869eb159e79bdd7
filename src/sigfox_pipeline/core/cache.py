"""
带有效期的缓存。

缓存对象显式传递给使用方（例如路由查询），不使用模块级全局变量。
"""
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

from ..common.logger import get_logger

logger = get_logger("cache")


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return self.expires_at >= now


class ExpiringCache:
    """
    键值缓存，每个条目带有过期时间。

    刷新失败时如果存在旧值则继续使用旧值，否则抛出刷新函数的异常。
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            clock: 返回当前时间（秒）的函数，默认使用 time.monotonic
        """
        self._clock = clock or time.monotonic
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: Hashable, value: Any, ttl: float) -> CacheEntry:
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl)
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def get_or_refresh(
        self,
        key: Hashable,
        ttl: float,
        refresh_fn: Callable[[], Any]
    ) -> Any:
        """
        返回未过期的缓存值，否则调用 refresh_fn 刷新。

        Args:
            key: 缓存键
            ttl: 新值的有效期（秒）
            refresh_fn: 无参数的刷新函数

        Returns:
            缓存值或刷新得到的新值
        """
        entry = self.get(key)
        if entry is not None and entry.is_fresh(self._clock()):
            return entry.value

        try:
            value = refresh_fn()
        except Exception as e:
            if entry is not None:
                logger.warning(f"Refresh failed for {key!r}, reusing stale value: {e}")
                return entry.value
            raise

        self.put(key, value, ttl)
        return value
