"""
队列主题命名。

主题名是线上协议的一部分：
    sigfox.devices.<DEVICE_ID>   设备专属队列（设备ID大写）
    sigfox.devices.all           所有设备的广播队列
    sigfox.types.<stepName>      步骤/类型队列
    sigfox.devices.missing_device  设备和类型都缺失时的兜底队列
"""
from typing import Optional

from .constants import TopicConstants


def device_topic(device: str) -> str:
    """设备主题；'all' 表示广播队列，不做大写转换"""
    if device.lower() == TopicConstants.ALL_DEVICES:
        return TopicConstants.DEVICE_TOPIC_PREFIX + TopicConstants.ALL_DEVICES
    return TopicConstants.DEVICE_TOPIC_PREFIX + device.upper()


def type_topic(step_name: str) -> str:
    """步骤主题"""
    return TopicConstants.TYPE_TOPIC_PREFIX + step_name


def topic_for(device: Optional[str] = None, type: Optional[str] = None) -> str:
    """
    根据设备ID或步骤名选择主题，设备优先。

    Args:
        device: 设备ID或 'all'
        type: 步骤名

    Returns:
        主题名
    """
    if device:
        return device_topic(device)
    if type:
        return type_topic(type)
    return TopicConstants.DEVICE_TOPIC_PREFIX + TopicConstants.MISSING_DEVICE


BROADCAST_TOPIC = device_topic(TopicConstants.ALL_DEVICES)
