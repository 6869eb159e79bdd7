"""
队列适配器包

此包包含消息队列的各种实现适配器。
"""

from .redis_streams import (
    MessageProcessingThread,
    RedisStreamConsumerGroup,
    RedisStreamPublisher,
)

__all__ = ["RedisStreamPublisher", "RedisStreamConsumerGroup", "MessageProcessingThread"]
