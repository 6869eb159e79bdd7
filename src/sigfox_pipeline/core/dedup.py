"""
重复投递检查。

队列可能重复投递同一个触发事件，入口函数在执行任务前通过去重存储检查消息是否已处理。
"""
import time
import threading
from typing import Callable, Dict, Optional

import redis

from ..common.logger import get_logger
from .constants import PipelineConstants
from .interfaces import IDedupStore
from .models import Envelope

logger = get_logger("dedup")


class NeverProcessed:
    """始终认为消息未处理过的保守实现"""

    def seen(self, message_id: str) -> bool:
        return False

    def mark_seen(self, message_id: str) -> None:
        pass


class MemoryDedupStore:
    """
    进程内的短期去重集合，条目在 ttl 秒后过期。
    """

    def __init__(
        self,
        ttl: float = PipelineConstants.DEFAULT_DEDUP_TTL,
        clock: Optional[Callable[[], float]] = None
    ):
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._expiry: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _purge(self, now: float) -> None:
        expired = [key for key, expires_at in self._expiry.items() if expires_at < now]
        for key in expired:
            del self._expiry[key]

    def seen(self, message_id: str) -> bool:
        now = self._clock()
        with self._lock:
            self._purge(now)
            return message_id in self._expiry

    def mark_seen(self, message_id: str) -> None:
        with self._lock:
            self._expiry[message_id] = self._clock() + self.ttl


class RedisDedupStore:
    """
    基于 Redis 键过期的去重存储，多个工作进程可以共享。
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        ttl: int = PipelineConstants.DEFAULT_DEDUP_TTL,
        key_prefix: str = "sigfox.dedup"
    ):
        self.redis_client = redis_client
        self.ttl = int(ttl)
        self.key_prefix = key_prefix

    def _key(self, message_id: str) -> str:
        return f"{self.key_prefix}:{message_id}"

    def seen(self, message_id: str) -> bool:
        return bool(self.redis_client.exists(self._key(message_id)))

    def mark_seen(self, message_id: str) -> None:
        self.redis_client.set(self._key(message_id), 1, nx=True, ex=self.ttl)


def is_processed_message(envelope: Envelope, store: IDedupStore) -> bool:
    """
    检查信封是否已经处理过。

    没有消息标识（未经回调接入分配 uuid）的信封视为未处理。
    去重存储不可用时同样视为未处理，宁可重复执行也不丢消息。
    """
    message_id = envelope.message_id
    if message_id is None:
        return False
    try:
        return store.seen(message_id)
    except Exception as e:
        logger.warning(f"Dedup check failed for {message_id}, treating as new: {e}")
        return False


def mark_processed_message(envelope: Envelope, store: IDedupStore) -> None:
    """标记信封已处理，存储不可用时仅记录警告"""
    message_id = envelope.message_id
    if message_id is None:
        return
    try:
        store.mark_seen(message_id)
    except Exception as e:
        logger.warning(f"Failed to mark {message_id} as processed: {e}")
