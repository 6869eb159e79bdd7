"""
测试 RedisStreamPublisher 和相关类。
"""
from unittest.mock import MagicMock

import fakeredis
import pytest
import redis

from sigfox_pipeline.adapters.redis_streams import (
    MessageProcessingThread,
    RedisStreamConsumerGroup,
    RedisStreamPublisher,
)
from sigfox_pipeline.core.codec import decode_message, decode_queue_event
from sigfox_pipeline.core.exceptions import (
    ConsumerGroupError,
    PublishError,
    QueueConnectionError,
)


@pytest.fixture
def fake_redis_client():
    """提供一个假的 Redis 客户端用于测试。"""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def publisher(monkeypatch, fake_redis_client):
    """提供一个使用假 Redis 客户端的 RedisStreamPublisher 实例。"""
    monkeypatch.setattr("redis.from_url", lambda *args, **kwargs: fake_redis_client)
    return RedisStreamPublisher(
        redis_url="redis://fakehost:6379/0",
        event_source_name="routeMessage",
    )


class TestRedisStreamPublisher:
    """测试 RedisStreamPublisher 类的功能。"""

    def test_init_connection_error(self, monkeypatch):
        """测试初始化时连接错误的处理。"""
        def mock_from_url(*args, **kwargs):
            raise redis.RedisError("Mock connection error")

        monkeypatch.setattr("redis.from_url", mock_from_url)

        with pytest.raises(QueueConnectionError) as excinfo:
            RedisStreamPublisher(redis_url="redis://fakehost:6379/0")

        assert "Mock connection error" in str(excinfo.value)

    def test_build_topic_key(self, publisher, fake_redis_client, monkeypatch):
        """没有前缀时 Stream 键名与主题名相同"""
        assert publisher._build_topic_key("sigfox.devices.all") == "sigfox.devices.all"

        prefixed = RedisStreamPublisher(redis_url="redis://fakehost:6379/0", topic_prefix="prod")
        assert prefixed._build_topic_key("sigfox.devices.all") == "prod:sigfox.devices.all"

    def test_publish_writes_stream_entry(self, publisher, fake_redis_client):
        """消息字段为 {source, timestamp, id, data}，data 是 base64 JSON"""
        message = {"device": "1C8A7E", "type": "decodeStructuredMessage", "route": ["logToWebhook"]}

        message_id = publisher.publish("sigfox.types.decodeStructuredMessage", message)

        entries = fake_redis_client.xrange("sigfox.types.decodeStructuredMessage")
        assert len(entries) == 1
        entry_id, fields = entries[0]
        assert entry_id == message_id
        assert fields["source"] == "routeMessage"
        assert "timestamp" in fields
        assert "id" in fields
        assert decode_message(fields["data"]) == message

    def test_publish_error(self, publisher):
        publisher.redis_client = MagicMock()
        publisher.redis_client.xadd.side_effect = redis.ConnectionError("down")

        with pytest.raises(PublishError):
            publisher.publish("sigfox.devices.all", {"device": "1C8A7E"})

    def test_subscribe_starts_thread(self, publisher):
        handler = MagicMock()

        thread = publisher.subscribe("sigfox.devices.all", handler, group_name="routeMessage", consumer_name="c1")
        try:
            assert thread.is_alive()
            assert thread.daemon
        finally:
            publisher.stop_all_subscriptions()
            thread.join(timeout=5)

    def test_acknowledge(self, publisher, fake_redis_client):
        group = RedisStreamConsumerGroup(fake_redis_client, "sigfox.devices.all", "routeMessage", "c1", block_ms=10)
        group.create_group()
        publisher.publish("sigfox.devices.all", {"device": "1C8A7E"})
        message = group.read_messages()[0]

        assert publisher.acknowledge("sigfox.devices.all", "routeMessage", [message["message_id"]]) is True


class TestRedisStreamConsumerGroup:
    """测试消费者组"""

    def test_create_group_is_idempotent(self, fake_redis_client):
        group = RedisStreamConsumerGroup(fake_redis_client, "sigfox.types.logToWebhook", "logToWebhook", "c1")
        group.create_group()
        group.create_group()

        groups = fake_redis_client.xinfo_groups("sigfox.types.logToWebhook")
        assert len(groups) == 1

    def test_create_group_error(self):
        client = MagicMock()
        client.xgroup_create.side_effect = redis.exceptions.ResponseError("WRONGTYPE")
        group = RedisStreamConsumerGroup(client, "topic", "group", "c1")

        with pytest.raises(ConsumerGroupError):
            group.create_group()

    def test_read_messages_returns_queue_events(self, publisher, fake_redis_client):
        """读到的消息可以直接交给入口解码"""
        group = RedisStreamConsumerGroup(fake_redis_client, "sigfox.devices.all", "routeMessage", "c1", block_ms=10)
        group.create_group()
        publisher.publish("sigfox.devices.all", {"device": "1c8a7e"})

        events = group.read_messages()

        assert len(events) == 1
        envelope, source = decode_queue_event(events[0])
        assert envelope.device == "1C8A7E"
        assert source == "sigfox.devices.all"


class TestMessageProcessingThread:
    """测试消息处理线程"""

    @pytest.fixture
    def group(self, fake_redis_client):
        group = RedisStreamConsumerGroup(fake_redis_client, "sigfox.devices.all", "routeMessage", "c1", block_ms=10)
        group.create_group()
        return group

    def test_handled_messages_are_acknowledged(self, publisher, fake_redis_client, group):
        handler = MagicMock()
        publisher.publish("sigfox.devices.all", {"device": "1C8A7E"})

        processed = MessageProcessingThread("sigfox.devices.all", handler, group).process_batch()

        assert processed == 1
        handler.assert_called_once()
        pending = fake_redis_client.xpending("sigfox.devices.all", "routeMessage")
        assert pending["pending"] == 0

    def test_failed_messages_stay_pending(self, publisher, fake_redis_client, group):
        """处理函数抛出异常的消息不确认"""
        handler = MagicMock(side_effect=RuntimeError("handler crashed"))
        publisher.publish("sigfox.devices.all", {"device": "1C8A7E"})

        processed = MessageProcessingThread("sigfox.devices.all", handler, group).process_batch()

        assert processed == 0
        pending = fake_redis_client.xpending("sigfox.devices.all", "routeMessage")
        assert pending["pending"] == 1
