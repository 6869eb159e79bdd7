"""
Redis Streams适配器

基于Redis Streams实现的消息队列：每个主题对应一个 Stream，
每个步骤以消费者组的方式读取自己的主题。
"""
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

import redis

from ..common.logger import get_logger
from ..core.codec import encode_message
from ..core.constants import ErrorMessages, RedisConstants
from ..core.exceptions import (
    ConsumerGroupError,
    PublishError,
    QueueConnectionError,
    SubscribeError,
)

# 消息处理函数：接收一个队列触发事件 {"data", "topic", "id", "message_id", ...}
QueueEventHandler = Callable[[Dict[str, Any]], Any]

logger = get_logger("redis_streams")


def _text(value: Any) -> Any:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisStreamPublisher:
    """
    Redis Streams实现的队列发布器

    消息字段为 {source, timestamp, id, data}，其中 data 是 base64 编码的 JSON 信封。
    """

    def __init__(
        self,
        redis_url: str,
        event_source_name: str = RedisConstants.DEFAULT_EVENT_SOURCE,
        topic_prefix: str = RedisConstants.DEFAULT_TOPIC_PREFIX,
        max_stream_length: Optional[int] = RedisConstants.DEFAULT_MAX_STREAM_LENGTH
    ):
        """
        初始化Redis Streams发布器

        Args:
            redis_url: Redis连接URL
            event_source_name: 事件源名称，通常是当前步骤名
            topic_prefix: 主题前缀，为空时 Stream 键名与主题名相同
            max_stream_length: 每个 Stream 保留的大致最大长度，None 表示不裁剪
        """
        self.redis_url = redis_url
        self.event_source_name = event_source_name
        self.topic_prefix = topic_prefix
        self.max_stream_length = max_stream_length

        self._running_threads: Dict[str, "MessageProcessingThread"] = {}

        try:
            self.redis_client = redis.from_url(redis_url, decode_responses=True)
            logger.debug(f"Connected to Redis: {redis_url}")
        except Exception as e:
            logger.error(f"{ErrorMessages.REDIS_CONNECTION_ERROR}: {str(e)}")
            raise QueueConnectionError(f"{ErrorMessages.REDIS_CONNECTION_ERROR}: {str(e)}") from e

    def _build_topic_key(self, topic: str) -> str:
        """
        构建Redis中的主题键名

        Args:
            topic: 原始主题名

        Returns:
            str: 带前缀的主题键名
        """
        if self.topic_prefix:
            return f"{self.topic_prefix}:{topic}"
        return topic

    def publish(
        self,
        topic: str,
        message_data: Dict[str, Any]
    ) -> str:
        """
        发布消息到指定主题

        Args:
            topic: 主题名
            message_data: 消息体（信封字典）

        Returns:
            str: Stream 中的消息ID

        Raises:
            PublishError: 编码或写入失败
        """
        topic_key = self._build_topic_key(topic)
        try:
            fields = {
                "source": self.event_source_name,
                "timestamp": int(time.time() * 1000),
                "id": str(uuid.uuid4()),
                RedisConstants.DATA_FIELD: encode_message(message_data),
            }
            if self.max_stream_length:
                message_id = self.redis_client.xadd(
                    topic_key,
                    fields,
                    maxlen=self.max_stream_length,
                    approximate=True
                )
            else:
                message_id = self.redis_client.xadd(topic_key, fields)

            logger.debug(f"Published message to {topic_key}, ID: {message_id}")
            return _text(message_id)
        except Exception as e:
            logger.error(f"{ErrorMessages.PUBLISH_ERROR}: topic={topic_key}, error={str(e)}")
            raise PublishError(f"{ErrorMessages.PUBLISH_ERROR}: {str(e)}") from e

    def subscribe(
        self,
        topic: str,
        handler: QueueEventHandler,
        group_name: str,
        consumer_name: Optional[str] = None
    ) -> "MessageProcessingThread":
        """
        订阅主题，在后台线程中处理消息

        Args:
            topic: 主题名
            handler: 消息处理函数
            group_name: 消费者组名称
            consumer_name: 消费者名称，如果为None则自动生成

        Returns:
            已启动的消息处理线程
        """
        topic_key = self._build_topic_key(topic)
        consumer_name = consumer_name or f"{RedisConstants.DEFAULT_CONSUMER_NAME}-{uuid.uuid4().hex[:8]}"

        try:
            consumer_group = RedisStreamConsumerGroup(
                redis_client=self.redis_client,
                topic=topic_key,
                group_name=group_name,
                consumer_name=consumer_name
            )
            consumer_group.create_group()
        except ConsumerGroupError as e:
            raise SubscribeError(f"{ErrorMessages.SUBSCRIBE_ERROR}: {str(e)}") from e

        subscription_key = f"{topic}:{group_name}:{consumer_name}"
        if subscription_key in self._running_threads:
            self._running_threads[subscription_key].stop()

        thread = MessageProcessingThread(
            topic=topic,
            handler=handler,
            consumer_group=consumer_group
        )
        self._running_threads[subscription_key] = thread
        thread.start()

        logger.debug(f"Subscribed: topic={topic}, group={group_name}, consumer={consumer_name}")
        return thread

    def acknowledge(
        self,
        topic: str,
        group_name: str,
        message_ids: List[str]
    ) -> bool:
        """
        确认消息已处理

        Args:
            topic: 主题名
            group_name: 消费者组名称
            message_ids: 消息ID列表

        Returns:
            bool: 确认是否成功
        """
        try:
            result = self.redis_client.xack(
                self._build_topic_key(topic),
                group_name,
                *message_ids
            )
            logger.debug(f"Acknowledged: topic={topic}, group={group_name}, ids={message_ids}")
            return result > 0
        except Exception as e:
            logger.error(f"Failed to acknowledge messages: {str(e)}")
            return False

    def stop_all_subscriptions(self) -> None:
        """停止所有订阅的消息处理线程"""
        for subscription_key, thread in self._running_threads.items():
            thread.stop()
            logger.debug(f"Stopped message processing thread: {subscription_key}")

        self._running_threads.clear()

    def close(self) -> None:
        """停止订阅并关闭Redis连接"""
        self.stop_all_subscriptions()
        self.redis_client.close()


class RedisStreamConsumerGroup:
    """Redis Stream消费者组"""

    def __init__(
        self,
        redis_client: redis.Redis,
        topic: str,
        group_name: str,
        consumer_name: str,
        block_ms: int = RedisConstants.DEFAULT_BLOCK_MS,
        batch_size: int = RedisConstants.DEFAULT_BATCH_SIZE
    ):
        """
        初始化Redis Stream消费者组

        Args:
            redis_client: Redis客户端
            topic: Stream 键名（已带前缀）
            group_name: 消费者组名称
            consumer_name: 消费者名称
            block_ms: 阻塞读取超时时间（毫秒）
            batch_size: 每次读取的最大消息数
        """
        self.redis_client = redis_client
        self.topic = topic
        self.group_name = group_name
        self.consumer_name = consumer_name
        self.block_ms = block_ms
        self.batch_size = batch_size

    def create_group(self) -> None:
        """
        创建消费者组

        如果组已存在，则忽略错误
        """
        try:
            self.redis_client.xgroup_create(
                name=self.topic,
                groupname=self.group_name,
                id=RedisConstants.REDIS_STREAM_FIRST_ID,
                mkstream=True
            )
            logger.debug(f"Created consumer group: {self.group_name} (topic: {self.topic})")
        except redis.exceptions.ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug(f"Consumer group already exists: {self.group_name} (topic: {self.topic})")
            else:
                logger.error(f"{ErrorMessages.CREATE_GROUP_ERROR}: {str(e)}")
                raise ConsumerGroupError(f"{ErrorMessages.CREATE_GROUP_ERROR}: {str(e)}") from e

    def read_messages(self) -> List[Dict[str, Any]]:
        """
        读取消息

        Returns:
            队列触发事件列表，每个事件包含 message_id、topic 以及 Stream 中的字段
        """
        try:
            messages = self.redis_client.xreadgroup(
                groupname=self.group_name,
                consumername=self.consumer_name,
                streams={self.topic: RedisConstants.REDIS_STREAM_NEXT_ID},
                count=self.batch_size,
                block=self.block_ms
            )
        except Exception as e:
            logger.error(f"Failed to read messages: {str(e)}")
            return []

        result = []
        for _stream_name, stream_messages in messages or []:
            for message_id, message_data in stream_messages:
                event = {_text(key): _text(value) for key, value in message_data.items()}
                event["message_id"] = _text(message_id)
                event["topic"] = self.topic
                result.append(event)
        return result

    def acknowledge(self, message_ids: List[str]) -> None:
        """
        确认消息已处理

        Args:
            message_ids: 消息ID列表
        """
        try:
            self.redis_client.xack(self.topic, self.group_name, *message_ids)
            logger.debug(f"Acknowledged messages: {message_ids}")
        except Exception as e:
            logger.error(f"Failed to acknowledge messages: {str(e)}")
            raise SubscribeError(f"Failed to acknowledge messages: {str(e)}") from e


class MessageProcessingThread(threading.Thread):
    """
    消息处理线程

    负责从Redis Stream读取消息并调用处理函数；处理函数正常返回后确认消息，
    抛出异常的消息不确认，留在待处理列表中。
    """

    def __init__(
        self,
        topic: str,
        handler: QueueEventHandler,
        consumer_group: RedisStreamConsumerGroup
    ):
        super().__init__(name=f"MessageProcessor-{topic}-{consumer_group.consumer_name}")
        self.daemon = True

        self.topic = topic
        self.handler = handler
        self.consumer_group = consumer_group
        self._stop_event = threading.Event()

    def process_batch(self) -> int:
        """
        读取并处理一批消息

        Returns:
            成功处理的消息数量
        """
        processed = 0
        for message in self.consumer_group.read_messages():
            if self._stop_event.is_set():
                break
            message_id = message["message_id"]
            try:
                self.handler(message)
                self.consumer_group.acknowledge([message_id])
                processed += 1
            except Exception as e:
                logger.error(f"Failed to process message {message_id}: {e}")
        return processed

    def run(self) -> None:
        """线程主循环"""
        logger.debug(f"Message processing thread started: {self.name}")

        while not self._stop_event.is_set():
            try:
                if not self.process_batch():
                    self._stop_event.wait(0.1)
            except Exception as e:
                logger.error(f"Message processing loop error: {e}")
                self._stop_event.wait(1)

        logger.debug(f"Message processing thread stopped: {self.name}")

    def stop(self) -> None:
        """停止线程"""
        self._stop_event.set()
