"""
步骤入口（每次调用的主循环）

所有步骤共享同一个调用流程：

    RECEIVED -> DECODED -> DEDUP_CHECKED -> TASK_RUN -> DISPATCHED -> FLUSHED

1. 把触发事件解码为信封；
2. 去重检查，已处理的消息跳过任务直接记录结果；
3. 执行任务并分发；
4. 有上限地等待日志刷新；
5. 始终返回 Ok，任何异常都不会传出入口函数，避免平台重新投递引发重复处理。
"""
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..common.logger import get_logger
from .codec import decode_http_body, decode_queue_event
from .constants import PipelineConstants
from .context import InvocationContext, invocation_scope
from .dedup import NeverProcessed, is_processed_message, mark_processed_message
from .exceptions import DecodeError
from .history import Clock, now_ms
from .interfaces import IDedupStore, IQueuePublisher, IRouteLookup
from .models import Envelope
from .outcome import Outcome
from .task_runner import StepTask, run_task

logger = get_logger("main_loop")

TriggerDecoder = Callable[[Any], Tuple[Envelope, Optional[str]]]


class InvocationState(str, Enum):
    """单次调用的状态"""
    RECEIVED = "received"
    DECODED = "decoded"
    DEDUP_CHECKED = "dedup_checked"
    TASK_RUN = "task_run"
    DISPATCHED = "dispatched"
    FLUSHED = "flushed"


def decode_http_trigger(body: Any) -> Tuple[Envelope, Optional[str]]:
    """HTTP 触发的解码器，来源由调用方通过上下文提供"""
    return decode_http_body(body), None


def handle_event(
    context: InvocationContext,
    event: Any,
    task: StepTask,
    decoder: TriggerDecoder = decode_queue_event,
) -> Outcome:
    """
    处理一次触发事件。

    Args:
        context: 调用上下文（调用结束后由调用方关闭）
        event: 原始触发事件
        task: 当前步骤的处理函数
        decoder: 触发事件解码器，默认解码队列事件

    Returns:
        始终为 Ok；内部结果（可能是 Failed）保存在 inner 中。
        解码失败时信封为 None。
    """
    state = InvocationState.RECEIVED
    envelope: Optional[Envelope] = None
    inner: Outcome

    try:
        try:
            envelope, source = decoder(event)
        except DecodeError as e:
            context.error("decode", e)
            inner = Outcome.failed(None, e)
        else:
            state = InvocationState.DECODED
            envelope = envelope.clone()
            if source and context.source is None:
                context.source = source
            context.bind(envelope)
            context.log("start", body=envelope.body, source=context.source, route=envelope.route)

            duplicate = is_processed_message(envelope, context.dedup_store)
            state = InvocationState.DEDUP_CHECKED
            if duplicate:
                context.log("duplicate", message_id=envelope.message_id)
                inner = Outcome.ok(envelope)
            else:
                state = InvocationState.TASK_RUN
                inner = run_task(context, envelope, task)
                state = InvocationState.DISPATCHED
                mark_processed_message(envelope, context.dedup_store)

            context.log(
                "result",
                result=inner.envelope,
                failed=inner.is_failed,
                state=state.value,
            )
    except Exception as e:
        context.error("main", e, state=state.value)
        inner = Outcome.failed(envelope, e)

    logger.debug(f"[{context.function_name}] invocation finished in state {state.value}")
    return Outcome.ok(inner.envelope, inner=inner)


class Pipeline:
    """
    步骤的入口包装器。

    进程级别持有长生命周期的协作者（发布器、去重存储、路由查询），
    每次调用通过 invocation_scope 创建独立的请求级上下文。
    """

    def __init__(
        self,
        function_name: str,
        publisher: IQueuePublisher,
        dedup_store: Optional[IDedupStore] = None,
        route_lookup: Optional[IRouteLookup] = None,
        clock: Clock = now_ms,
        flush_timeout: float = PipelineConstants.DEFAULT_FLUSH_TIMEOUT,
        unpack_body: bool = False,
        options: Optional[Dict[str, Any]] = None,
    ):
        self.function_name = function_name
        self.publisher = publisher
        self.dedup_store = dedup_store or NeverProcessed()
        self.route_lookup = route_lookup
        self.clock = clock
        self.flush_timeout = flush_timeout
        self.unpack_body = unpack_body
        self.options = dict(options or {})

    def _scope(self, source: Optional[str]):
        return invocation_scope(
            self.function_name,
            self.publisher,
            dedup_store=self.dedup_store,
            route_lookup=self.route_lookup,
            source=source,
            start_time=self.clock(),
            clock=self.clock,
            flush_timeout=self.flush_timeout,
            unpack_body=self.unpack_body,
            options=self.options,
        )

    def main(self, event: Mapping[str, Any], task: StepTask, source: Optional[str] = None) -> Outcome:
        """处理一个队列触发事件"""
        try:
            with self._scope(source) as context:
                outcome = handle_event(context, event, task)
            logger.debug(f"[{self.function_name}] {InvocationState.FLUSHED.value}")
            return outcome
        except Exception as e:
            # 上下文创建或关闭失败
            logger.error(f"[{self.function_name}] invocation aborted: {e}")
            return Outcome.ok(None, inner=Outcome.failed(None, e))

    def main_http(self, body: Any, task: StepTask, path: Optional[str] = None) -> Outcome:
        """处理一个 HTTP 触发的请求体，来源记录为请求路径"""
        try:
            with self._scope(path) as context:
                outcome = handle_event(context, body, task, decoder=decode_http_trigger)
            logger.debug(f"[{self.function_name}] {InvocationState.FLUSHED.value}")
            return outcome
        except Exception as e:
            logger.error(f"[{self.function_name}] invocation aborted: {e}")
            return Outcome.ok(None, inner=Outcome.failed(None, e))
