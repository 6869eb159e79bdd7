"""
发布器工厂单元测试
"""
from unittest.mock import MagicMock

import fakeredis
import pytest

from sigfox_pipeline.adapters.redis_streams import RedisStreamPublisher
from sigfox_pipeline.core.dedup import MemoryDedupStore, NeverProcessed, RedisDedupStore
from sigfox_pipeline.factory import (
    PublisherFactoryRegistry,
    build_redis_url,
    create_dedup_store,
    create_publisher,
)


@pytest.fixture
def fake_redis(monkeypatch):
    client = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr("redis.from_url", lambda *args, **kwargs: client)
    return client


class TestBuildRedisUrl:

    def test_from_redis_section(self):
        config = {"redis": {"host": "redis", "port": 6380, "db": 2}}
        assert build_redis_url(config) == "redis://redis:6380/2"

    def test_with_password(self):
        config = {"redis": {"host": "redis", "password": "secret"}}
        assert build_redis_url(config) == "redis://:secret@redis:6379/0"

    def test_connection_url_wins(self):
        config = {"connection_url": "rediss://cache:6379/1", "redis": {"host": "ignored"}}
        assert build_redis_url(config) == "rediss://cache:6379/1"


class TestCreatePublisher:

    def test_creates_redis_publisher(self, fake_redis):
        publisher = create_publisher({"redis": {"host": "redis"}, "stream_prefix": "dev"}, "routeMessage")

        assert isinstance(publisher, RedisStreamPublisher)
        assert publisher.event_source_name == "routeMessage"
        assert publisher.topic_prefix == "dev"

    def test_unknown_queue_type(self):
        with pytest.raises(ValueError):
            create_publisher({}, "routeMessage", queue_type="kafka")

    def test_detect_queue_type(self):
        assert PublisherFactoryRegistry._detect_queue_type({"connection_url": "redis://x:6379/0"}) == "redis"
        assert PublisherFactoryRegistry._detect_queue_type({}) == "redis"


class TestCreateDedupStore:

    def test_default_is_disabled(self):
        assert isinstance(create_dedup_store({}), NeverProcessed)

    def test_memory_backend(self):
        store = create_dedup_store({"backend": "memory", "ttl": 30})
        assert isinstance(store, MemoryDedupStore)
        assert store.ttl == 30

    def test_redis_backend_reuses_publisher_connection(self, fake_redis):
        publisher = create_publisher({"redis": {}}, "routeMessage")
        store = create_dedup_store({"backend": "redis"}, publisher)

        assert isinstance(store, RedisDedupStore)
        assert store.redis_client is fake_redis

    def test_redis_backend_requires_redis_publisher(self):
        with pytest.raises(ValueError):
            create_dedup_store({"backend": "redis"}, MagicMock(spec=["publish"]))

    def test_unknown_backend_falls_back(self):
        assert isinstance(create_dedup_store({"backend": "memcached"}), NeverProcessed)
