"""
跳转历史记录。

每一跳在信封的 history 末尾追加一条计时记录，用于诊断延迟和失败。
"""
import time
from typing import Callable, Optional

from .models import Envelope, HistoryRecord

Clock = Callable[[], int]


def now_ms() -> int:
    """当前时间（毫秒级时间戳）"""
    return int(time.time() * 1000)


def to_tenths(elapsed_ms: int) -> float:
    """毫秒差值向零截断到 100ms 后换算为秒，例如 350 -> 0.3，1200 -> 1.2，-50 -> 0.0"""
    return int(elapsed_ms / 100) / 10


def record_hop(
    envelope: Envelope,
    start_time: int,
    source: Optional[str],
    function_name: Optional[str] = None,
    clock: Optional[Clock] = None,
) -> Envelope:
    """
    生成追加了一条跳转记录的新信封，输入信封保持不变。

    Args:
        envelope: 当前信封
        start_time: 本次调用开始处理的时间（毫秒）
        source: 触发本次调用的队列主题，HTTP 首跳为请求路径
        function_name: 执行本次调用的步骤名，默认取信封当前的 type
        clock: 返回当前毫秒时间的函数，默认使用系统时间

    Returns:
        新的信封
    """
    end = (clock or now_ms)()
    previous = envelope.last_hop
    record = HistoryRecord(
        timestamp=start_time,
        end=end,
        duration=to_tenths(end - start_time),
        latency=to_tenths(start_time - previous.end) if previous is not None else None,
        source=source,
        function=function_name if function_name is not None else envelope.type,
    )
    return envelope.model_copy(update={"history": [*envelope.history, record]}, deep=True)
