"""
流水线的核心数据模型。

此模块定义了消息信封 (Envelope) 和跳转历史记录 (HistoryRecord)。
消息信封在整个流水线中传递，所有路由状态都保存在信封内部。
"""
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HistoryRecord(BaseModel):
    """
    单次跳转的计时记录。

    timestamp 和 end 为毫秒级时间戳，duration 和 latency 以秒为单位，
    精度为 0.1 秒。
    """
    # 本次调用开始处理的时间
    timestamp: int

    # 本次调用结束的时间
    end: int

    # 处理耗时（秒）
    duration: float

    # 距上一跳结束的延迟（秒），第一跳为 None
    latency: Optional[float] = None

    # 触发本次调用的队列主题或请求路径
    source: Optional[str] = None

    # 执行本次调用的步骤名
    function: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Envelope(BaseModel):
    """
    消息信封模型，承载设备ID、载荷、路由和历史记录。

    线上JSON使用驼峰字段名 (isDispatched, rootTraceId)，
    Python 代码中使用下划线字段名。
    """
    # 设备ID，统一为大写
    device: Optional[str] = None

    # 当前（目标）步骤名
    type: Optional[str] = None

    # 解码后的字段，步骤可以丰富它
    body: Dict[str, Any] = Field(default_factory=dict)

    # 回调请求中的查询参数
    query: Dict[str, Any] = Field(default_factory=dict)

    # 剩余待执行的步骤
    route: List[str] = Field(default_factory=list)

    # 只追加的跳转历史，最早的在前
    history: List[HistoryRecord] = Field(default_factory=list)

    # 该信封副本已经发布，不可再次发布
    is_dispatched: bool = Field(default=False, alias="isDispatched")

    # 跨步骤追踪ID，在接入时生成一次
    root_trace_id: Optional[str] = Field(default=None, alias="rootTraceId")

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        json_schema_extra={
            "example": {
                "device": "1C8A7E",
                "type": "decodeStructuredMessage",
                "body": {"data": "920e06272731741db051e600", "seqNumber": 1492},
                "query": {"type": "altitude"},
                "route": ["logToWebhook"],
                "history": [
                    {
                        "timestamp": 1494167451240,
                        "end": 1494167451242,
                        "duration": 0,
                        "latency": None,
                        "source": None,
                        "function": "sigfoxCallback",
                    }
                ],
                "isDispatched": False,
                "rootTraceId": "9f1c2b8e4a7d4e0f9b3c6d5e2a1f0b7c",
            }
        }
    )

    @field_validator("device", mode="before")
    @classmethod
    def _normalize_device(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value).upper()

    @field_validator("body", "query", mode="before")
    @classmethod
    def _default_mapping(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("route", "history", mode="before")
    @classmethod
    def _default_sequence(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def last_hop(self) -> Optional[HistoryRecord]:
        """最近一次跳转记录"""
        return self.history[-1] if self.history else None

    @property
    def message_id(self) -> Optional[str]:
        """
        用于去重的消息标识：接入时分配的 uuid 加上当前步骤名。

        同一条消息在不同步骤的投递互不冲突。
        """
        uuid = self.body.get("uuid")
        if not uuid:
            return None
        return f"{uuid}:{self.type or ''}"

    def clone(self) -> "Envelope":
        """深拷贝信封，副本的修改不会影响调用方"""
        return self.model_copy(deep=True)

    def to_message(self, unpack_body: bool = False) -> Dict[str, Any]:
        """
        序列化为发布到队列的消息体。

        Args:
            unpack_body: 为 True 时将 body 中的字段提升到消息根部，
                         供期望扁平记录的下游系统使用

        Returns:
            可以直接 JSON 序列化的字典
        """
        message = self.model_dump(mode="json", by_alias=True)
        if unpack_body:
            body = message.pop("body", None) or {}
            message.update(body)
        return message

    @classmethod
    def wire_keys(cls) -> Set[str]:
        """信封自身的字段名，包括驼峰别名"""
        keys = set()
        for name, field in cls.model_fields.items():
            keys.add(name)
            if field.alias:
                keys.add(field.alias)
        return keys

    @classmethod
    def from_message(cls, data: Dict[str, Any]) -> "Envelope":
        """
        从队列消息体构建信封。

        没有 body 字段的消息是 unpack_body 发布的扁平记录，
        信封字段以外的根部字段重新收回 body。
        """
        if "body" not in data:
            envelope_keys = cls.wire_keys()
            data = dict(data)
            data["body"] = {key: data.pop(key) for key in list(data) if key not in envelope_keys}
        return cls.model_validate(data)
