"""
流水线步骤

每个步骤是一个处理函数 task(context, device, body, envelope)，
由 StepWorker 在对应主题的消费者组上调用。
"""
from typing import Dict

from ..core.task_runner import StepTask
from ..core.topics import BROADCAST_TOPIC, type_topic
from . import decode_structured_message, log_to_webhook, route_message

STEP_TASKS: Dict[str, StepTask] = {
    route_message.STEP_NAME: route_message.task,
    decode_structured_message.STEP_NAME: decode_structured_message.task,
    log_to_webhook.STEP_NAME: log_to_webhook.task,
}


def get_step_task(name: str) -> StepTask:
    """
    获取步骤处理函数

    Raises:
        ValueError: 未知的步骤名
    """
    if name not in STEP_TASKS:
        raise ValueError(f"Unknown step: {name}. Available steps: {', '.join(sorted(STEP_TASKS))}")
    return STEP_TASKS[name]


def source_topic(name: str) -> str:
    """步骤监听的主题：routeMessage 监听所有设备的消息，其余步骤监听自己的类型主题"""
    if name == route_message.STEP_NAME:
        return BROADCAST_TOPIC
    return type_topic(name)


__all__ = ["STEP_TASKS", "get_step_task", "source_topic"]
