"""
logToWebhook 步骤

把消息 body（扁平记录）POST 到配置的 Webhook 地址，例如表格或看板服务的接收端。
请求失败时异常交给任务执行器记录，消息仍然继续分发。
"""
from typing import Any, Dict, Mapping, Optional

import httpx

from ..common.config import get_section
from ..core.context import InvocationContext
from ..core.models import Envelope

STEP_NAME = "logToWebhook"
DEFAULT_TIMEOUT = 10.0


def _webhook_settings(context: InvocationContext) -> Dict[str, Any]:
    settings = dict(get_section("steps").get(STEP_NAME) or {})
    settings.update(context.options)
    return settings


def build_record(device: Optional[str], body: Mapping[str, Any]) -> Dict[str, Any]:
    """构建要发送的扁平记录，设备ID放在最前面"""
    record: Dict[str, Any] = {"device": device}
    record.update(body)
    return record


def task(
    context: InvocationContext,
    device: Optional[str],
    body: Mapping[str, Any],
    envelope: Envelope
) -> Envelope:
    """
    发送记录到 Webhook。

    Raises:
        ValueError: 没有配置 Webhook 地址
        httpx.HTTPError: 请求失败或返回错误状态码
    """
    settings = _webhook_settings(context)
    url = settings.get("url")
    if not url:
        raise ValueError(f"No webhook url configured for {STEP_NAME}")

    record = build_record(device, body)
    response = httpx.post(url, json=record, timeout=settings.get("timeout", DEFAULT_TIMEOUT))
    response.raise_for_status()

    context.log("log_to_webhook", url=url, status_code=response.status_code)
    return envelope
