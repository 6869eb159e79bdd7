"""
公共模块

包含共享的日志与配置功能。
"""
from .logger import flush_logs, get_logger
from .config import (
    load_config,
    get_config,
    get_section,
    get_event_bus_config,
    get_logging_config,
    get_pipeline_config,
)

__all__ = [
    "get_logger",
    "flush_logs",
    "load_config",
    "get_config",
    "get_section",
    "get_event_bus_config",
    "get_logging_config",
    "get_pipeline_config",
]
