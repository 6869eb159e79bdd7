"""
触发事件编解码。

队列触发的消息体是 base64 编码的 JSON 信封（Pub/Sub 约定），
HTTP 触发的请求体直接是 JSON。
"""
import base64
import binascii
import json
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from .constants import ErrorMessages, RedisConstants
from .exceptions import DecodeError
from .models import Envelope


def encode_message(message_data: Dict[str, Any]) -> str:
    """把消息体编码为 base64 JSON 字符串"""
    try:
        payload = json.dumps(message_data, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Message is not JSON serializable: {e}") from e
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_message(data: Any) -> Dict[str, Any]:
    """
    解码 base64 JSON 字符串（或字节）为字典。

    Raises:
        DecodeError: 不是合法的 base64 或 JSON，或者不是 JSON 对象
    """
    if isinstance(data, str):
        data = data.encode("ascii", errors="strict") if data.isascii() else None
    if not isinstance(data, (bytes, bytearray)):
        raise DecodeError(f"{ErrorMessages.INVALID_TRIGGER}: data is not base64 text")
    try:
        decoded = json.loads(base64.b64decode(data, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(f"{ErrorMessages.INVALID_TRIGGER}: {e}") from e
    if not isinstance(decoded, dict):
        raise DecodeError(f"{ErrorMessages.INVALID_TRIGGER}: expected a JSON object")
    return decoded


def _to_envelope(message: Mapping[str, Any]) -> Envelope:
    try:
        return Envelope.from_message(dict(message))
    except ValidationError as e:
        raise DecodeError(f"{ErrorMessages.INVALID_TRIGGER}: {e}") from e


def decode_queue_event(event: Mapping[str, Any]) -> Tuple[Envelope, Optional[str]]:
    """
    解码队列触发事件。

    支持以下格式：
        {"data": {"data": "<base64>"}, "resource": "projects/p/topics/sigfox.devices.all"}
        {"data": "<base64>", "topic": "sigfox.types.decodeStructuredMessage"}

    Args:
        event: 触发事件

    Returns:
        (信封, 来源主题)

    Raises:
        DecodeError: 事件格式错误
    """
    if not isinstance(event, Mapping):
        raise DecodeError(f"{ErrorMessages.INVALID_TRIGGER}: event is not a mapping")

    data = event.get(RedisConstants.DATA_FIELD)
    if isinstance(data, Mapping):
        data = data.get(RedisConstants.DATA_FIELD)
    if data is None:
        raise DecodeError(f"{ErrorMessages.INVALID_TRIGGER}: missing data field")

    source = event.get("resource") or event.get("topic")
    return _to_envelope(decode_message(data)), source


def decode_http_body(body: Any) -> Envelope:
    """
    解码 HTTP 触发的 JSON 请求体。

    Raises:
        DecodeError: 请求体不是 JSON 对象或字段不合法
    """
    if isinstance(body, (str, bytes, bytearray)):
        try:
            body = json.loads(body)
        except json.JSONDecodeError as e:
            raise DecodeError(f"{ErrorMessages.INVALID_TRIGGER}: {e}") from e
    if not isinstance(body, Mapping):
        raise DecodeError(f"{ErrorMessages.INVALID_TRIGGER}: expected a JSON object")
    return _to_envelope(body)
