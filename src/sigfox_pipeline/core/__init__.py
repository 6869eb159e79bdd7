"""
流水线核心：消息信封、历史记录、任务执行、分发与入口主循环。
"""
from .constants import ErrorMessages, PipelineConstants, RedisConstants, TopicConstants
from .exceptions import (
    ConsumerGroupError,
    DecodeError,
    PipelineError,
    PublishError,
    QueueConnectionError,
    RouteLookupError,
    SubscribeError,
    TaskError,
)
from .models import Envelope, HistoryRecord
from .outcome import Outcome
from .interfaces import IDedupStore, IQueuePublisher, IRouteLookup
from .history import now_ms, record_hop, to_tenths
from .topics import BROADCAST_TOPIC, device_topic, topic_for, type_topic
from .cache import CacheEntry, ExpiringCache
from .dedup import (
    MemoryDedupStore,
    NeverProcessed,
    RedisDedupStore,
    is_processed_message,
    mark_processed_message,
)
from .routing import CachedRouteLookup, ConfigRouteSource, RouteTable, parse_route
from .codec import decode_http_body, decode_message, decode_queue_event, encode_message
from .context import InvocationContext, invocation_scope
from .dispatcher import dispatch, publish_message
from .task_runner import StepTask, adopt_result, execute_task, run_task
from .main_loop import InvocationState, Pipeline, handle_event

__all__ = [
    "ErrorMessages",
    "PipelineConstants",
    "RedisConstants",
    "TopicConstants",
    "ConsumerGroupError",
    "DecodeError",
    "PipelineError",
    "PublishError",
    "QueueConnectionError",
    "RouteLookupError",
    "SubscribeError",
    "TaskError",
    "Envelope",
    "HistoryRecord",
    "Outcome",
    "IDedupStore",
    "IQueuePublisher",
    "IRouteLookup",
    "now_ms",
    "record_hop",
    "to_tenths",
    "BROADCAST_TOPIC",
    "device_topic",
    "topic_for",
    "type_topic",
    "CacheEntry",
    "ExpiringCache",
    "MemoryDedupStore",
    "NeverProcessed",
    "RedisDedupStore",
    "is_processed_message",
    "mark_processed_message",
    "CachedRouteLookup",
    "ConfigRouteSource",
    "RouteTable",
    "parse_route",
    "decode_http_body",
    "decode_message",
    "decode_queue_event",
    "encode_message",
    "InvocationContext",
    "invocation_scope",
    "dispatch",
    "publish_message",
    "StepTask",
    "adopt_result",
    "execute_task",
    "run_task",
    "InvocationState",
    "Pipeline",
    "handle_event",
]
