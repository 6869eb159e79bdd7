"""
配置管理模块

从YAML文件加载流水线配置，支持 ${VAR:default} 形式的环境变量替换。
"""
import os
import re
from pathlib import Path
from typing import Any, Dict

import yaml

from .logger import get_logger

logger = get_logger("config")

# 默认配置文件路径
DEFAULT_CONFIG_PATH = "config/config.yml"


def _get_config_path() -> Path:
    """获取配置文件路径"""
    config_path = Path(os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH))
    if not config_path.exists():
        config_path = Path(DEFAULT_CONFIG_PATH)
    return config_path


def _resolve_env_vars(value: str) -> str:
    """解析环境变量 ${VAR:default} 或 ${VAR:-default}"""
    if not isinstance(value, str):
        return value

    pattern = re.compile(r'\${([^}:]+)(?::(-?)([^}]*?))?}')

    def replace_var(match):
        var_name, dash, default = match.groups()
        env_value = os.environ.get(var_name)
        if env_value is not None:
            return env_value
        return default if default is not None else ""

    return pattern.sub(replace_var, value)


def _coerce(value: str) -> Any:
    """将字符串转换为适当的数据类型"""
    if value.isdigit():
        return int(value)
    if value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    return value


def _resolve_value(value: Any) -> Any:
    if isinstance(value, dict):
        return _resolve_dict(value)
    if isinstance(value, list):
        return [_resolve_value(item) for item in value]
    if isinstance(value, str):
        return _coerce(_resolve_env_vars(value))
    return value


def _resolve_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """递归解析字典中的环境变量并转换数据类型"""
    return {key: _resolve_value(value) for key, value in data.items()}


def load_config() -> Dict[str, Any]:
    """加载配置文件"""
    try:
        config_file = _get_config_path()
        if config_file.exists():
            with open(config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f) or {}
            config = _resolve_dict(config)
            logger.debug(f"Loaded config: {config_file}")
            return config
        else:
            logger.warning(f"Config file not found: {config_file}")
            return {}
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        return {}


def get_config() -> Dict[str, Any]:
    """获取原始配置字典"""
    return load_config()


def get_section(name: str) -> Dict[str, Any]:
    """
    获取指定配置段

    Args:
        name: 配置段名称，例如 'pipeline'、'routes'、'callback'

    Returns:
        配置段字典，不存在时返回空字典
    """
    section = load_config().get(name) or {}
    if not isinstance(section, dict):
        logger.warning(f"Config section '{name}' is not a mapping, ignoring it")
        return {}
    return section


def get_event_bus_config() -> Dict[str, Any]:
    """获取事件总线（Redis Streams）配置"""
    return get_section('event_bus')


def get_logging_config() -> Dict[str, Any]:
    """获取日志配置"""
    return get_section('logging')


def get_pipeline_config() -> Dict[str, Any]:
    """获取流水线配置（刷新超时、路由缓存、去重）"""
    return get_section('pipeline')
