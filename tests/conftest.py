"""
全局测试配置
"""
import os
import sys
from unittest.mock import MagicMock

import pytest

# 确保能导入项目模块（未安装时使用 src 目录）
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from sigfox_pipeline.core import Envelope, InvocationContext
from sigfox_pipeline.core.codec import encode_message


class FakeClock:
    """可控的毫秒时钟，每次调用后前进 step 毫秒"""

    def __init__(self, now: int = 1_494_167_451_000, step: int = 0):
        self.now = now
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value

    def advance(self, ms: int) -> None:
        self.now += ms


def make_queue_event(message, topic="sigfox.types.decodeStructuredMessage"):
    """构建 Redis Streams 消费者读到的队列触发事件"""
    if isinstance(message, Envelope):
        message = message.to_message()
    return {"data": encode_message(message), "topic": topic, "message_id": "1-0"}


@pytest.fixture
def mock_publisher():
    """模拟队列发布器"""
    publisher = MagicMock()
    publisher.publish.return_value = "mock-message-id-123"
    return publisher


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def context(mock_publisher, clock):
    """绑定模拟发布器和可控时钟的调用上下文"""
    return InvocationContext(
        function_name="decodeStructuredMessage",
        publisher=mock_publisher,
        source="sigfox.types.decodeStructuredMessage",
        start_time=clock.now,
        clock=clock,
        flush_timeout=0.1,
    )


@pytest.fixture
def envelope():
    """示例设备消息，路由中还有两个步骤"""
    return Envelope(
        device="1C8A7E",
        type="routeMessage",
        body={"uuid": "5c1b7c8e-0001", "data": "920e06272731741db051e600", "seqNumber": 1492},
        route=["decodeStructuredMessage", "logToWebhook"],
        root_trace_id="trace-123",
    )


@pytest.fixture
def queue_event():
    """返回构建队列触发事件的函数"""
    return make_queue_event
