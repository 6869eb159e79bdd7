"""
任务执行器

调用当前步骤的处理函数 task(context, device, body, envelope)，
无论成功或失败都继续调用分发器。

处理函数抛出的异常只记录日志，不再向上抛出，这样流水线仍然能记录历史并结束路由，
而不是被平台无限重试。处理函数已经产生的副作用不会回滚。
"""
import asyncio
import concurrent.futures
import inspect
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from .context import InvocationContext
from .dispatcher import dispatch
from .exceptions import TaskError
from .models import Envelope
from .outcome import Outcome

TaskResult = Union[Envelope, Mapping[str, Any], None]
StepTask = Callable[
    [InvocationContext, Optional[str], Mapping[str, Any], Envelope],
    Union[TaskResult, Awaitable[TaskResult]]
]


def _await_result(awaitable: Awaitable[TaskResult]) -> TaskResult:
    """在独立线程的事件循环中等待协程结果，调用方是否处于事件循环中都可以使用"""
    async def _wait():
        return await awaitable

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, _wait()).result()


def adopt_result(original: Envelope, result: TaskResult) -> Envelope:
    """
    根据处理函数的返回值生成新的信封。

    处理函数只能修改 body 和 type；route、history、device、追踪ID和分发标记
    由分发器维护。唯一的例外是路由分配：原信封路由为空时采用返回的路由。

    Raises:
        TaskError: 返回值不是信封或字典
    """
    if result is None:
        return original
    # 字典结果只采用其中给出的字段
    given = set(result) if isinstance(result, Mapping) else {"body", "type"}
    if isinstance(result, Mapping):
        result = Envelope.model_validate(dict(result))
    if not isinstance(result, Envelope):
        raise TaskError(f"Task returned {type(result).__name__}, expected Envelope")

    update: Dict[str, Any] = {}
    if "body" in given:
        update["body"] = dict(result.body)
    if "type" in given:
        update["type"] = result.type
    if not original.route and result.route:
        update["route"] = list(result.route)
    return original.model_copy(update=update, deep=True)


def execute_task(
    context: InvocationContext,
    envelope: Envelope,
    task: StepTask
) -> Outcome:
    """
    执行处理函数，返回 Ok(新信封) 或 Failed(原信封, 异常)。

    处理函数收到的是信封的私有副本，不会影响调用方持有的信封。
    """
    private = envelope.clone()
    try:
        result = task(context, private.device, private.body, private)
        if inspect.isawaitable(result):
            result = _await_result(result)
        updated = adopt_result(envelope, result)
    except Exception as e:
        context.error("task", e, body=envelope.body)
        return Outcome.failed(envelope, e)

    context.log("task", result=updated.body, route=updated.route)
    return Outcome.ok(updated)


def run_task(
    context: InvocationContext,
    envelope: Envelope,
    task: StepTask,
    start_time: Optional[int] = None
) -> Outcome:
    """
    执行处理函数，然后无条件调用分发器。

    Returns:
        分发后的结果；任务或发布任一失败时为 Failed，信封始终是分发后的信封
    """
    task_outcome = execute_task(context, envelope, task)
    dispatch_outcome = dispatch(context, task_outcome.envelope, start_time)
    return task_outcome.merge(dispatch_outcome)
