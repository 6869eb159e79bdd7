"""
步骤工作进程

在步骤主题的消费者组上运行一个流水线步骤，例如：

    sigfox-step --step decodeStructuredMessage

进程启动时创建长生命周期的协作者（发布器、去重存储、路由查询），
每条消息通过 Pipeline.main 处理。
"""
import argparse
import os
import signal
import sys
import threading
from typing import Any, Dict, Optional

from .adapters.redis_streams import MessageProcessingThread, RedisStreamPublisher
from .common.config import get_event_bus_config, get_pipeline_config, get_section
from .common.logger import get_logger
from .core.cache import ExpiringCache
from .core.constants import PipelineConstants
from .core.interfaces import IQueuePublisher
from .core.main_loop import Pipeline
from .core.outcome import Outcome
from .core.routing import CachedRouteLookup, ConfigRouteSource
from .core.task_runner import StepTask
from .factory import create_dedup_store, create_publisher
from .steps import STEP_TASKS, get_step_task, source_topic

logger = get_logger("worker")


def build_pipeline(
    step_name: str,
    publisher: IQueuePublisher,
    pipeline_config: Optional[Dict[str, Any]] = None,
    step_options: Optional[Dict[str, Any]] = None
) -> Pipeline:
    """
    根据 pipeline 配置段创建步骤的入口包装器

    Args:
        step_name: 步骤名，例如 'routeMessage'
        publisher: 队列发布器
        pipeline_config: pipeline 配置段，为 None 时从配置文件读取
        step_options: 传给处理函数的选项（context.options）

    Returns:
        Pipeline 实例
    """
    if pipeline_config is None:
        pipeline_config = get_pipeline_config()

    route_lookup = CachedRouteLookup(
        ConfigRouteSource(),
        cache=ExpiringCache(),
        ttl=pipeline_config.get('route_cache_ttl', PipelineConstants.DEFAULT_ROUTE_CACHE_TTL)
    )
    dedup_store = create_dedup_store(pipeline_config.get('dedup') or {}, publisher)

    return Pipeline(
        function_name=step_name,
        publisher=publisher,
        dedup_store=dedup_store,
        route_lookup=route_lookup,
        flush_timeout=pipeline_config.get('flush_timeout', PipelineConstants.DEFAULT_FLUSH_TIMEOUT),
        unpack_body=bool(pipeline_config.get('unpack_body', False)),
        options=step_options,
    )


class StepWorker:
    """
    步骤工作者

    订阅步骤主题，收到的每条消息交给 Pipeline 处理。
    Pipeline.main 不会抛出异常，因此每条消息处理后都会被确认。
    """

    def __init__(
        self,
        step_name: str,
        publisher: RedisStreamPublisher,
        pipeline: Optional[Pipeline] = None,
        task: Optional[StepTask] = None,
        group_name: Optional[str] = None,
        consumer_name: Optional[str] = None
    ):
        """
        初始化步骤工作者

        Args:
            step_name: 步骤名
            publisher: Redis Streams 发布器，同时用于订阅
            pipeline: 入口包装器，为 None 时根据配置创建
            task: 处理函数，为 None 时从步骤注册表获取
            group_name: 消费者组名称，默认为步骤名
            consumer_name: 消费者名称，为 None 时自动生成
        """
        self.step_name = step_name
        self.publisher = publisher
        self.task = task or get_step_task(step_name)
        self.pipeline = pipeline or build_pipeline(
            step_name,
            publisher,
            step_options=get_section('steps').get(step_name)
        )
        self.topic = source_topic(step_name)
        self.group_name = group_name or step_name
        self.consumer_name = consumer_name
        self._thread: Optional[MessageProcessingThread] = None

    def handle_event(self, event: Dict[str, Any]) -> Outcome:
        """处理一个队列触发事件，来源记录为事件所在的主题"""
        return self.pipeline.main(event, self.task, source=self.topic)

    def start(self) -> MessageProcessingThread:
        """订阅步骤主题并启动后台处理线程"""
        self._thread = self.publisher.subscribe(
            topic=self.topic,
            handler=self.handle_event,
            group_name=self.group_name,
            consumer_name=self.consumer_name
        )
        logger.info(f"Step worker started: step={self.step_name}, topic={self.topic}, group={self.group_name}")
        return self._thread

    def stop(self) -> None:
        """停止处理线程"""
        if self._thread is not None:
            self._thread.stop()
            self._thread = None
        self.publisher.stop_all_subscriptions()
        logger.info(f"Step worker stopped: step={self.step_name}")


def parse_args(argv=None):
    """解析命令行参数"""
    parser = argparse.ArgumentParser(description="Sigfox 流水线步骤工作进程")
    parser.add_argument(
        "--step",
        type=str,
        required=True,
        choices=sorted(STEP_TASKS),
        help="要运行的步骤名"
    )
    parser.add_argument(
        "--group",
        type=str,
        default=None,
        help="消费者组名称 (默认: 步骤名)"
    )
    parser.add_argument(
        "--consumer",
        type=str,
        default=None,
        help="消费者名称 (默认: 自动生成)"
    )
    parser.add_argument(
        "--config-file",
        type=str,
        default=os.environ.get("CONFIG_PATH", ""),
        help="配置文件路径 (默认: 使用环境变量CONFIG_PATH或默认路径)"
    )
    return parser.parse_args(argv)


def main(argv=None):
    """步骤工作进程入口点函数"""
    args = parse_args(argv)
    if args.config_file:
        os.environ["CONFIG_PATH"] = args.config_file
        logger.info(f"使用配置文件: {args.config_file}")

    try:
        publisher = create_publisher(get_event_bus_config(), args.step)
        worker = StepWorker(
            args.step,
            publisher,
            group_name=args.group,
            consumer_name=args.consumer
        )
        worker.start()
    except Exception as e:
        logger.exception(f"步骤启动失败: {str(e)}")
        sys.exit(1)

    stop_event = threading.Event()

    def _shutdown(signum, frame):
        logger.info(f"收到信号 {signum}，正在停止步骤 {args.step}")
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    stop_event.wait()
    worker.stop()
    publisher.close()


if __name__ == "__main__":
    main()
