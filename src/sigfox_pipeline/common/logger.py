"""
日志系统模块

此模块为流水线各步骤提供统一的日志记录功能，支持控制台、文件和Loki输出，
并通过JSON格式记录结构化的动作日志（action + 字段）。
"""
import logging
import os
import socket
import sys
import threading
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler

from pythonjsonlogger import jsonlogger

# Loki支持（可选）
try:
    import logging_loki
    LOKI_AVAILABLE = True
except ImportError:
    LOKI_AVAILABLE = False

# 日志格式
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_FILE = "sigfox-pipeline.log"
LOG_FILE_MAX_SIZE = 10 * 1024 * 1024  # 10MB
LOG_FILE_BACKUP_COUNT = 5

# 默认刷新等待时间（秒）
DEFAULT_FLUSH_TIMEOUT = 2.0

# 全局标记，确保只初始化一次
_logging_configured = False


def _enabled(value) -> bool:
    return str(value).lower() == "true"


def _file_handler(logging_config) -> logging.Handler:
    """创建日志文件处理器，rotation 为 midnight 时按天滚动，否则按大小滚动"""
    log_dir = logging_config.get("dir", DEFAULT_LOG_DIR)
    os.makedirs(log_dir, exist_ok=True)
    log_file_path = os.path.join(log_dir, logging_config.get("file", DEFAULT_LOG_FILE))

    if logging_config.get("rotation") == "midnight":
        return TimedRotatingFileHandler(
            log_file_path,
            when="midnight",
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding="utf-8"
        )
    return RotatingFileHandler(
        log_file_path,
        maxBytes=LOG_FILE_MAX_SIZE,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8"
    )


def _add_loki_handler(root_logger: logging.Logger, loki_url: str) -> None:
    if not LOKI_AVAILABLE:
        root_logger.warning("logging_loki is not installed, skipping Loki handler")
        return
    try:
        service_name = os.environ.get("SERVICE_NAME", "sigfox-pipeline")
        loki_handler = logging_loki.LokiHandler(
            url=loki_url,
            tags={"application": service_name, "hostname": socket.gethostname()},
            version="1",
        )
        loki_handler.setLevel(root_logger.level)
        root_logger.addHandler(loki_handler)
        root_logger.info(f"Loki log handler configured: {loki_url}")
    except Exception as e:
        root_logger.warning(f"Failed to configure Loki log handler: {str(e)}")


def _configure_logging(logging_config=None):
    """
    按 logging 配置节配置根日志记录器

    Args:
        logging_config: 配置项 level, use_json, to_file, dir, file, rotation,
                        enable_loki, loki_url；缺省时只输出到控制台
    """
    global _logging_configured

    if _logging_configured:
        return

    logging_config = logging_config or {}
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(logging_config.get("level", "INFO")).upper(), logging.INFO))

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    if _enabled(logging_config.get("use_json", False)):
        formatter = jsonlogger.JsonFormatter(JSON_FORMAT)
    else:
        formatter = logging.Formatter(LOG_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if _enabled(logging_config.get("to_file", False)):
        handlers.append(_file_handler(logging_config))
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    if _enabled(logging_config.get("enable_loki", False)) and logging_config.get("loki_url"):
        _add_loki_handler(root_logger, logging_config["loki_url"])

    _logging_configured = True


def _initialize_logging():
    """初始化日志系统，基于配置文件进行一次性配置"""
    try:
        # 延迟导入避免循环依赖
        from .config import load_config
        _configure_logging(load_config().get("logging"))
    except Exception as e:
        _configure_logging()
        logging.getLogger("config").warning(f"Failed to load logging config, using defaults: {e}")


def get_logger(name):
    """
    获取指定名称的日志记录器

    Args:
        name: 日志记录器名称

    Returns:
        配置好的日志记录器
    """
    return logging.getLogger(name)


def flush_logs(timeout: float = DEFAULT_FLUSH_TIMEOUT) -> bool:
    """
    刷新所有根日志处理器，最多等待 timeout 秒。

    刷新在后台线程中进行，处理器不可用时不会阻塞调用方；
    刷新过程中的任何异常都会被忽略。

    Args:
        timeout: 最长等待时间（秒）

    Returns:
        在超时之前完成刷新返回 True，否则返回 False
    """
    handlers = list(logging.getLogger().handlers)

    def _flush_all():
        for handler in handlers:
            try:
                handler.flush()
            except Exception:
                # 日志刷新失败不能影响控制流
                pass

    flusher = threading.Thread(target=_flush_all, name="log-flusher", daemon=True)
    flusher.start()
    flusher.join(timeout)
    return not flusher.is_alive()


# 模块加载时进行一次性初始化，get_logger 已定义，config 模块可以导入本模块
_initialize_logging()
