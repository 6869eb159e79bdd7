"""
decodeStructuredMessage 步骤

由 sigfox.types.decodeStructuredMessage 队列触发，解码消息 body.data 中的结构化传感器数据，
把解码出的字段（例如 ctr 计数器、lig 光照、tmp 温度）加入 body。
"""
from typing import Any, Dict, Mapping, Optional

from ..core.context import InvocationContext
from ..core.models import Envelope
from .structured_message import decode_message

STEP_NAME = "decodeStructuredMessage"


def decode_body(context: InvocationContext, body: Mapping[str, Any]) -> Dict[str, Any]:
    """
    返回加入解码字段后的新 body；body 没有 data 或解码失败时返回原 body 的副本。
    """
    updated = dict(body)
    data = body.get("data")
    if not data:
        return updated
    try:
        decoded = decode_message(data, context.options.get("text_fields"))
    except ValueError as e:
        context.error("decode_message", e, data=data)
        return updated
    updated.update(decoded)
    context.log("decode_message", result=decoded)
    return updated


def task(
    context: InvocationContext,
    device: Optional[str],
    body: Mapping[str, Any],
    envelope: Envelope
) -> Envelope:
    """解码结构化消息，返回 body 已更新的信封"""
    return envelope.model_copy(update={"body": decode_body(context, body)})
