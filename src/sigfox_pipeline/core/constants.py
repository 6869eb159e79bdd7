"""
流水线使用的常量定义。
"""


class TopicConstants:
    """队列主题命名规则（线上协议的一部分，不可修改）"""
    DEVICE_TOPIC_PREFIX = "sigfox.devices."
    TYPE_TOPIC_PREFIX = "sigfox.types."
    ALL_DEVICES = "all"
    MISSING_DEVICE = "missing_device"


class RedisConstants:
    """Redis相关常量"""
    # Redis Streams 常量
    STREAM_ID_AUTO = "*"  # 让Redis自动生成ID

    # 默认值
    DEFAULT_TOPIC_PREFIX = ""  # 默认主题前缀，保持主题名不变
    DEFAULT_EVENT_SOURCE = "unknown_function"  # 默认事件源
    DEFAULT_CONSUMER_NAME = "consumer-1"  # 默认消费者名称

    # 消息字段名
    DATA_FIELD = "data"

    # 默认 Redis Stream 最大长度
    DEFAULT_MAX_STREAM_LENGTH = 1000

    # 默认消息批处理大小
    DEFAULT_BATCH_SIZE = 10

    # 默认阻塞等待时间（毫秒）
    DEFAULT_BLOCK_MS = 2000

    # Redis流特殊ID
    REDIS_STREAM_FIRST_ID = "0-0"
    REDIS_STREAM_NEXT_ID = ">"


class PipelineConstants:
    """流水线默认值"""
    # 日志刷新最长等待时间（秒）
    DEFAULT_FLUSH_TIMEOUT = 2.0

    # 路由缓存有效期（秒）
    DEFAULT_ROUTE_CACHE_TTL = 10.0

    # 去重记录有效期（秒）
    DEFAULT_DEDUP_TTL = 300

    # 路由表中默认路由的键
    DEFAULT_ROUTE_KEY = "sigfox-route"

    # 回调服务的函数名，用于历史记录
    CALLBACK_FUNCTION = "sigfoxCallback"

    # 回调时间转换为本地时间的偏移（UTC+8）
    LOCAL_TIME_OFFSET_MS = 8 * 60 * 60 * 1000


class ErrorMessages:
    """错误消息常量"""
    REDIS_CONNECTION_ERROR = "Unable to connect to Redis"
    PUBLISH_ERROR = "Failed to publish message"
    SUBSCRIBE_ERROR = "Failed to subscribe to topic"
    CREATE_GROUP_ERROR = "Failed to create consumer group"
    INVALID_TRIGGER = "Invalid trigger payload"
    ROUTE_LOOKUP_ERROR = "Failed to look up route"
