"""
处理结果类型。

任务执行器和分发器都返回 Outcome，而不是抛出异常：
Ok 表示正常完成，Failed 携带最后一个正确的信封以及导致失败的异常。
入口函数对外始终返回 Ok，内部的失败通过 inner 保留以便观测。
"""
from dataclasses import dataclass
from typing import Optional

from .models import Envelope


@dataclass(frozen=True)
class Outcome:
    envelope: Optional[Envelope]
    error: Optional[BaseException] = None
    inner: Optional["Outcome"] = None

    @classmethod
    def ok(cls, envelope: Optional[Envelope], inner: Optional["Outcome"] = None) -> "Outcome":
        return cls(envelope=envelope, inner=inner)

    @classmethod
    def failed(cls, envelope: Optional[Envelope], error: BaseException) -> "Outcome":
        return cls(envelope=envelope, error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def is_failed(self) -> bool:
        return self.error is not None

    def merge(self, later: "Outcome") -> "Outcome":
        """
        合并两个连续阶段的结果：信封取后一阶段的，错误保留先发生的那个。
        """
        error = self.error if self.error is not None else later.error
        return Outcome(envelope=later.envelope, error=error)
