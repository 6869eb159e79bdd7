"""
Queue Publisher Factory

Abstract factory pattern for creating queue publishers and dedup stores.
This decouples the pipeline steps from specific queue implementations.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from .adapters.redis_streams import RedisStreamPublisher
from .common.logger import get_logger
from .core.constants import PipelineConstants, RedisConstants
from .core.dedup import MemoryDedupStore, NeverProcessed, RedisDedupStore
from .core.interfaces import IDedupStore, IQueuePublisher

logger = get_logger("publisher_factory")


def build_redis_url(config: Dict[str, Any]) -> str:
    """
    Build a Redis URL from the event_bus configuration

    Args:
        config: Event bus configuration, either with 'connection_url'
                or a 'redis' section (host, port, db, password)

    Returns:
        Redis connection URL
    """
    if config.get('connection_url'):
        return config['connection_url']

    redis_config = config.get('redis', {})
    redis_host = redis_config.get('host', 'localhost')
    redis_port = redis_config.get('port', 6379)
    redis_db = redis_config.get('db', 0)
    redis_password = redis_config.get('password', '')

    if redis_password:
        return f"redis://:{redis_password}@{redis_host}:{redis_port}/{redis_db}"
    return f"redis://{redis_host}:{redis_port}/{redis_db}"


class PublisherFactory(ABC):
    """Abstract factory for creating queue publishers"""

    @abstractmethod
    def create_publisher(
        self,
        config: Dict[str, Any],
        function_name: str
    ) -> IQueuePublisher:
        """
        Create a queue publisher

        Args:
            config: Event bus configuration
            function_name: Name of the pipeline step using the publisher

        Returns:
            IQueuePublisher instance
        """
        pass


class RedisPublisherFactory(PublisherFactory):
    """Factory for creating Redis Streams publishers"""

    def create_publisher(
        self,
        config: Dict[str, Any],
        function_name: str
    ) -> IQueuePublisher:
        """
        Create a Redis Streams publisher

        Args:
            config: Event bus configuration containing Redis settings
            function_name: Name of the pipeline step using the publisher

        Returns:
            RedisStreamPublisher instance
        """
        try:
            redis_url = build_redis_url(config)
            publisher = RedisStreamPublisher(
                redis_url=redis_url,
                event_source_name=function_name,
                topic_prefix=config.get('stream_prefix', RedisConstants.DEFAULT_TOPIC_PREFIX),
                max_stream_length=config.get('max_stream_length', RedisConstants.DEFAULT_MAX_STREAM_LENGTH)
            )
            logger.debug(f"Created Redis publisher for step '{function_name}'")
            return publisher

        except Exception as e:
            logger.error(f"Failed to create Redis publisher: {e}")
            raise


class PublisherFactoryRegistry:
    """Registry for queue publisher factories"""

    _factories: Dict[str, PublisherFactory] = {}

    @classmethod
    def register_factory(cls, queue_type: str, factory: PublisherFactory) -> None:
        """
        Register a publisher factory

        Args:
            queue_type: Type identifier for the queue (e.g., 'redis')
            factory: Factory instance
        """
        cls._factories[queue_type] = factory
        logger.debug(f"Registered publisher factory for type: {queue_type}")

    @classmethod
    def get_factory(cls, queue_type: str) -> PublisherFactory:
        """
        Get a factory for the specified queue type

        Raises:
            ValueError: If no factory is registered for the queue type
        """
        if queue_type not in cls._factories:
            raise ValueError(f"No factory registered for queue type: {queue_type}")

        return cls._factories[queue_type]

    @classmethod
    def create_publisher(
        cls,
        config: Dict[str, Any],
        function_name: str,
        queue_type: Optional[str] = None
    ) -> IQueuePublisher:
        """
        Create a publisher using the appropriate factory

        Args:
            config: Event bus configuration
            function_name: Name of the pipeline step using the publisher
            queue_type: Type of queue (auto-detected if None)

        Returns:
            IQueuePublisher instance
        """
        if queue_type is None:
            queue_type = cls._detect_queue_type(config)

        factory = cls.get_factory(queue_type)
        return factory.create_publisher(config, function_name)

    @classmethod
    def _detect_queue_type(cls, config: Dict[str, Any]) -> str:
        """Auto-detect the queue type from configuration"""
        if 'redis' in config:
            return 'redis'

        connection_url = config.get('connection_url', '')
        if connection_url:
            parsed = urlparse(connection_url)
            if parsed.scheme in ['redis', 'rediss']:
                return 'redis'

        logger.warning("Could not auto-detect queue type, defaulting to Redis")
        return 'redis'


# Register default factories
PublisherFactoryRegistry.register_factory('redis', RedisPublisherFactory())


def create_publisher(
    config: Dict[str, Any],
    function_name: str,
    queue_type: Optional[str] = None
) -> IQueuePublisher:
    """
    Convenience function to create a queue publisher

    Args:
        config: Event bus configuration
        function_name: Name of the pipeline step using the publisher
        queue_type: Type of queue (auto-detected if None)

    Returns:
        IQueuePublisher instance
    """
    return PublisherFactoryRegistry.create_publisher(config, function_name, queue_type)


def create_dedup_store(
    dedup_config: Dict[str, Any],
    publisher: Optional[IQueuePublisher] = None
) -> IDedupStore:
    """
    Create the dedup store named by the pipeline.dedup configuration

    Args:
        dedup_config: {'backend': 'none' | 'memory' | 'redis', 'ttl': seconds}
        publisher: Redis publisher whose connection the 'redis' backend reuses

    Returns:
        IDedupStore instance
    """
    backend = str(dedup_config.get('backend', 'none')).lower()
    ttl = dedup_config.get('ttl', PipelineConstants.DEFAULT_DEDUP_TTL)

    if backend == 'memory':
        return MemoryDedupStore(ttl=ttl)
    if backend == 'redis':
        redis_client = getattr(publisher, 'redis_client', None)
        if redis_client is None:
            raise ValueError("Redis dedup store requires a Redis publisher")
        return RedisDedupStore(redis_client, ttl=ttl)
    if backend != 'none':
        logger.warning(f"Unknown dedup backend '{backend}', dedup disabled")
    return NeverProcessed()
