"""
FastAPI 应用创建模块

此模块负责创建和配置 Sigfox 回调服务的 FastAPI 应用实例，设置路由和依赖项。
"""
from typing import Any, Dict, Optional

from fastapi import FastAPI

from ..common.config import get_event_bus_config, get_pipeline_config, get_section
from ..common.logger import get_logger
from ..core.constants import PipelineConstants
from ..core.interfaces import IQueuePublisher
from ..factory import create_publisher

# 创建应用模块日志器
logger = get_logger("app")


def create_app(
    publisher: Optional[IQueuePublisher] = None,
    config_override: Optional[Dict[str, Any]] = None,
    event_bus_config_override: Optional[Dict[str, Any]] = None
) -> FastAPI:
    """
    创建并配置 FastAPI 应用实例

    Args:
        publisher: 队列发布器，如果为 None 则根据事件总线配置创建 Redis 实现
        config_override: callback 配置段覆盖，主要用于测试
        event_bus_config_override: 事件总线配置覆盖，主要用于测试

    Returns:
        配置好的 FastAPI 应用实例
    """
    # 避免循环导入
    from .service import SigfoxCallbackService
    from .webhook_handler import DEFAULT_CALLBACK_PATH, SigfoxCallbackHandler

    # 获取配置，支持测试时的配置覆盖
    if config_override is not None:
        config = config_override
    else:
        config = get_section('callback')

    app_title = config.get('app_title', 'Sigfox 回调服务')
    app_version = config.get('app_version', '0.1.0')
    service_name = config.get('service_name', 'sigfox-callback')

    api_paths = {
        'sigfox_callback': DEFAULT_CALLBACK_PATH,
        'health': '/health',
    }
    api_paths.update(config.get('api_paths') or {})

    logger.info(f"开始创建 FastAPI 应用: {app_title} v{app_version}")

    app = FastAPI(
        title=app_title,
        description="接收 Sigfox 云端回调并发布到消息队列",
        version=app_version
    )

    # 如果没有提供发布器，则创建默认的 Redis 实现
    if publisher is None:
        if event_bus_config_override is not None:
            event_bus_config = event_bus_config_override
        else:
            event_bus_config = get_event_bus_config()
        publisher = create_publisher(event_bus_config, PipelineConstants.CALLBACK_FUNCTION)
        logger.info("创建默认 Redis 发布器")
    else:
        logger.info(f"使用提供的发布器: {type(publisher).__name__}")

    callback_service = SigfoxCallbackService(
        publisher=publisher,
        downlink_data=config.get('downlink_data', '0123456789abcdef'),
        flush_timeout=config.get(
            'flush_timeout',
            get_pipeline_config().get('flush_timeout', PipelineConstants.DEFAULT_FLUSH_TIMEOUT)
        )
    )

    # 创建回调处理器并注册路由
    handler = SigfoxCallbackHandler(
        callback_service=callback_service,
        callback_path=api_paths['sigfox_callback']
    )
    app.include_router(handler.router, prefix="")

    # 添加健康检查端点
    @app.get(api_paths['health'], tags=["Health"])
    async def health_check():
        """健康检查端点"""
        logger.debug("收到健康检查请求")
        return {"status": "ok", "service": service_name, "version": app_version}

    logger.info(f"FastAPI 应用创建完成: {service_name}")
    return app
