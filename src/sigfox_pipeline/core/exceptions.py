"""
流水线的自定义异常定义。
"""


class PipelineError(Exception):
    """流水线的基础异常类"""
    pass


class QueueConnectionError(PipelineError):
    """与消息队列连接相关的异常"""
    pass


class PublishError(PipelineError):
    """发布消息时发生的异常"""
    pass


class SubscribeError(PipelineError):
    """订阅主题时发生的异常"""
    pass


class ConsumerGroupError(PipelineError):
    """消费者组操作异常"""
    pass


class DecodeError(PipelineError):
    """触发事件无法解码为消息信封"""
    pass


class RouteLookupError(PipelineError):
    """路由表查询失败"""
    pass


class TaskError(PipelineError):
    """步骤处理函数执行失败"""
    pass
