"""
流水线核心依赖的协作者接口。

核心只依赖这些窄接口，具体实现（Redis Streams、路由表、去重存储）可以替换。
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class IQueuePublisher(Protocol):
    """
    持久化发布/订阅队列的发布端。
    """

    def publish(
        self,
        topic: str,
        message_data: Dict[str, Any]
    ) -> Optional[str]:
        """
        发布一条消息到指定主题。

        Args:
            topic: 主题名，例如 "sigfox.types.decodeStructuredMessage"
            message_data: 已序列化为字典的消息体

        Returns:
            成功时返回消息在队列中的ID，失败时抛出 PublishError
        """
        ...


@runtime_checkable
class IDedupStore(Protocol):
    """
    去重存储：记录最近处理过的消息ID。
    """

    def seen(self, message_id: str) -> bool:
        """消息是否已经处理过"""
        ...

    def mark_seen(self, message_id: str) -> None:
        """标记消息已处理"""
        ...


@runtime_checkable
class IRouteLookup(Protocol):
    """
    路由表查询：设备ID -> 有序的步骤名列表。
    """

    def lookup_route(self, device: Optional[str]) -> List[str]:
        ...
