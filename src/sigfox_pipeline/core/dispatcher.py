"""
消息分发器

步骤任务完成后，分发器记录本次跳转的历史，从路由中取出下一个步骤，
并把信封发布到该步骤的队列；路由为空时结束流水线。

分发器从不抛出异常：发布失败只记录日志，返回 Failed 结果。
如果让异常传出，平台会重新触发整个调用，重复执行已经完成的副作用。
"""
from typing import Optional

from .context import InvocationContext
from .history import record_hop
from .models import Envelope
from .outcome import Outcome
from .topics import topic_for


def publish_message(
    context: InvocationContext,
    envelope: Envelope,
    device: Optional[str] = None,
    type: Optional[str] = None,
    unpack_body: Optional[bool] = None,
) -> Optional[str]:
    """
    把信封发布到设备或步骤对应的队列。

    Args:
        context: 调用上下文
        envelope: 要发布的信封
        device: 目标设备ID，或 'all' 表示广播队列
        type: 目标步骤名
        unpack_body: 是否把 body 提升到消息根部，默认取上下文设置

    Returns:
        队列返回的消息ID

    Raises:
        PublishError: 队列不可用或主题不存在
    """
    topic = topic_for(device=device, type=type)
    if unpack_body is None:
        unpack_body = context.unpack_body
    message = envelope.to_message(unpack_body=unpack_body)
    message_id = context.publisher.publish(topic, message)
    context.log("publish_message", topic=topic, message_id=message_id, route=envelope.route)
    return message_id


def dispatch(
    context: InvocationContext,
    envelope: Envelope,
    start_time: Optional[int] = None,
) -> Outcome:
    """
    把信封分发到路由中的下一个步骤。

    - 信封已分发 (is_dispatched) 时原样返回，不再发布；
    - 否则追加一条历史记录；
    - 路由为空时结束，返回盖过时间戳的信封，is_dispatched 保持 False；
    - 否则取出路由头作为 type，剩余部分作为新路由，发布一次，
      返回已发送的信封并标记 is_dispatched。

    Args:
        context: 调用上下文，提供发布器、来源主题和时钟
        envelope: 当前信封
        start_time: 本次调用开始的时间（毫秒），默认取上下文的开始时间

    Returns:
        Ok(信封)，发布失败时为 Failed(信封, 异常)
    """
    if envelope.is_dispatched:
        context.log("dispatch_skipped", reason="already_dispatched")
        return Outcome.ok(envelope)

    if start_time is None:
        start_time = context.start_time

    stamped = record_hop(
        envelope,
        start_time,
        context.source,
        function_name=context.function_name,
        clock=context.clock,
    )

    if not stamped.route:
        context.log("no_route", history=len(stamped.history))
        return Outcome.ok(stamped)

    # 不修改原路由，构造新列表
    next_step = stamped.route[0]
    remaining = list(stamped.route[1:])
    outgoing = stamped.model_copy(update={"type": next_step, "route": remaining, "is_dispatched": False})
    sent = outgoing.model_copy(update={"is_dispatched": True})

    try:
        publish_message(context, outgoing, type=next_step)
    except Exception as e:
        context.error("dispatch", e, next_step=next_step, route=remaining)
        return Outcome.failed(sent, e)

    context.log("dispatch", next_step=next_step, route=remaining)
    return Outcome.ok(sent)
