"""
请求级调用上下文。

每次调用开始时创建上下文并绑定协作者（发布器、去重存储、路由查询、时钟），
调用结束时关闭上下文并刷新日志。协作者由调用方传入，不保存在模块级变量中。上下文也是步骤处理函数收到的第一个参数。
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from pydantic import BaseModel

from ..common.logger import flush_logs, get_logger
from .constants import PipelineConstants
from .dedup import NeverProcessed
from .history import Clock, now_ms
from .interfaces import IDedupStore, IQueuePublisher, IRouteLookup
from .models import Envelope

logger = get_logger("sigfox_pipeline")

# LogRecord 自带的属性名，不能作为 extra 字段使用
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def _loggable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return value


@dataclass
class InvocationContext:
    function_name: str
    publisher: IQueuePublisher
    dedup_store: IDedupStore = field(default_factory=NeverProcessed)
    route_lookup: Optional[IRouteLookup] = None
    source: Optional[str] = None
    start_time: int = field(default_factory=now_ms)
    clock: Clock = now_ms
    flush_timeout: float = PipelineConstants.DEFAULT_FLUSH_TIMEOUT
    unpack_body: bool = False
    options: Dict[str, Any] = field(default_factory=dict)

    device: Optional[str] = None
    type: Optional[str] = None
    root_trace_id: Optional[str] = None
    closed: bool = False

    def bind(self, envelope: Envelope) -> None:
        """把信封的追踪字段绑定到上下文，后续日志自动携带"""
        self.device = envelope.device
        self.type = envelope.type
        self.root_trace_id = envelope.root_trace_id

    def _extra(self, action: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        extra = {
            "action": action,
            "function": self.function_name,
            "device": self.device,
            "type": self.type,
            "root_trace_id": self.root_trace_id,
        }
        for key, value in fields.items():
            name = f"field_{key}" if key in _RESERVED_ATTRS else key
            extra[name] = _loggable(value)
        return extra

    def log(self, action: str, **fields: Any) -> None:
        """记录一个流水线动作，日志失败不影响控制流"""
        try:
            logger.info(f"[{self.function_name}] {action}", extra=self._extra(action, fields))
        except Exception:
            pass

    def error(self, action: str, error: BaseException, **fields: Any) -> None:
        """记录一个失败的流水线动作"""
        try:
            logger.error(
                f"[{self.function_name}] {action}: {error}",
                exc_info=(type(error), error, error.__traceback__),
                extra=self._extra(action, {"error": error, **fields}),
            )
        except Exception:
            pass

    def close(self) -> bool:
        """
        结束调用：刷新日志（有上限的等待）并标记上下文已关闭。

        Returns:
            日志是否在超时前刷新完成
        """
        if self.closed:
            return True
        flushed = flush_logs(self.flush_timeout)
        if not flushed:
            logger.warning(f"[{self.function_name}] 日志刷新超时 ({self.flush_timeout}s)")
        self.closed = True
        return flushed


@contextmanager
def invocation_scope(
    function_name: str,
    publisher: IQueuePublisher,
    **kwargs: Any
) -> Iterator[InvocationContext]:
    """
    创建一次调用的上下文，退出时关闭。

    Args:
        function_name: 当前步骤名
        publisher: 队列发布器
        **kwargs: InvocationContext 的其余字段

    Yields:
        调用上下文
    """
    context = InvocationContext(function_name=function_name, publisher=publisher, **kwargs)
    try:
        yield context
    finally:
        context.close()
