"""
Sigfox 遥测消息流水线

Sigfox 回调收到的设备消息沿着路由在各个步骤之间传递：每个步骤处理完消息后，
分发器把信封发布到路由中下一个步骤的队列（Redis Streams）。
"""
from .common.logger import get_logger
from .core import (
    Envelope,
    HistoryRecord,
    InvocationContext,
    Outcome,
    Pipeline,
    dispatch,
    handle_event,
    run_task,
)

__version__ = "0.1.0"

__all__ = [
    "get_logger",
    "Envelope",
    "HistoryRecord",
    "InvocationContext",
    "Outcome",
    "Pipeline",
    "dispatch",
    "handle_event",
    "run_task",
]
