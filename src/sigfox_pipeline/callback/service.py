"""
Sigfox 回调处理服务

此模块把 Sigfox 云端回调的请求体转换为消息信封，记录第一跳历史，
并发布到以下队列：
(1) sigfox.devices.all          所有设备的队列，routeMessage 在此监听
(2) sigfox.types.<type>         回调URL中指定的设备类型，例如 ?type=gps
(3) sigfox.devices.<deviceID>   设备专属队列（可能不存在，最后发送）

这段代码是关键路径，必须尽量简单：任何一个队列发布失败都不影响其他队列和回调响应。
"""
import math
import re
import string
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..common.logger import get_logger
from ..core.constants import PipelineConstants, TopicConstants
from ..core.context import InvocationContext, invocation_scope
from ..core.dispatcher import publish_message
from ..core.history import Clock, now_ms, record_hop
from ..core.interfaces import IQueuePublisher
from ..core.models import Envelope

logger = get_logger("sigfox_callback")

# 下行数据暂时固定，必须是 8 字节的十六进制字符串
DEFAULT_DOWNLINK_DATA = "0123456789abcdef"

_INT_FIELDS = ("lat", "lng", "seqNumber")
_FLOAT_FIELDS = ("snr", "avgSnr", "rssi")
_BOOL_FIELDS = ("duplicate", "ack", "longPolling")


_INT_PREFIX = re.compile(r"\s*[-+]?\d+")
_FLOAT_PREFIX = re.compile(r"\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() == "true"


def parse_int(value: Any) -> Optional[int]:
    """取文本开头的整数部分，例如 '1476980426.5' -> 1476980426；无法解析时返回 None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    match = _INT_PREFIX.match(str(value))
    return int(match.group()) if match else None


def parse_float(value: Any) -> Optional[float]:
    """取文本开头的数字部分，例如 '-123.00dBm' -> -123.0；无法解析时返回 None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _FLOAT_PREFIX.match(str(value))
    return float(match.group()) if match else None


def format_datetime(timestamp_ms: int) -> str:
    """毫秒时间戳转换为 'YYYY-MM-DD HH:MM:SS'（UTC）"""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def parse_sigfox_message(body: Mapping[str, Any]) -> Dict[str, Any]:
    """
    把 Sigfox 回调的文本字段转换为原生类型。

    Sigfox 回调的请求体所有字段都是字符串，例如：

        {"device": "1CB0B8", "data": "81543795", "time": "1476980426",
         "duplicate": "false", "snr": "18.86", "station": "1D44",
         "avgSnr": "15.54", "lat": "1", "lng": "104", "rssi": "-123.00",
         "seqNumber": "1492", "ack": "false", "longPolling": "false"}

    time（秒）改名为 baseStationTime，并增加毫秒级的 timestamp 文本字段。
    无法转换的字段保留原值并记录警告，消息仍然会被发布。

    Args:
        body: 回调请求体

    Returns:
        新的字典，输入保持不变
    """
    parsed = dict(body)
    if parsed.get("time"):
        base_station_time = parse_int(parsed["time"])
        if base_station_time is None:
            logger.warning(f"无法解析 Sigfox 字段 time={parsed['time']!r}，保留原值")
        else:
            del parsed["time"]
            parsed["timestamp"] = str(base_station_time * 1000)
            parsed["baseStationTime"] = base_station_time
    for name in _BOOL_FIELDS:
        if parsed.get(name) not in (None, ""):
            parsed[name] = parse_bool(parsed[name])
    for names, convert in ((_FLOAT_FIELDS, parse_float), (_INT_FIELDS, parse_int)):
        for name in names:
            if parsed.get(name) in (None, ""):
                continue
            value = convert(parsed[name])
            if value is None:
                logger.warning(f"无法解析 Sigfox 字段 {name}={parsed[name]!r}，保留原值")
            else:
                parsed[name] = value
    return parsed


def validate_downlink_data(data: str) -> str:
    """
    检查下行数据是 8 字节的十六进制字符串

    Raises:
        ValueError: 长度不是 16 或包含非十六进制字符
    """
    if len(data) != 16:
        raise ValueError(f"Downlink data must be 8 bytes: {data}")
    invalid = [c for c in data.lower() if c not in string.hexdigits]
    if invalid:
        raise ValueError(f"Invalid hex digit in downlink data: {invalid[0]}")
    return data


class SigfoxCallbackService:
    """
    Sigfox 回调处理服务

    负责构建信封、发布到队列以及生成回调响应。
    """

    def __init__(
        self,
        publisher: IQueuePublisher,
        clock: Clock = now_ms,
        downlink_data: str = DEFAULT_DOWNLINK_DATA,
        flush_timeout: float = PipelineConstants.DEFAULT_FLUSH_TIMEOUT
    ):
        """
        初始化回调处理服务

        Args:
            publisher: 队列发布器
            clock: 返回当前毫秒时间的函数
            downlink_data: 需要下行时返回给 Sigfox 的数据
            flush_timeout: 每次请求结束时等待日志刷新的上限（秒）
        """
        self.publisher = publisher
        self.clock = clock
        self.downlink_data = validate_downlink_data(downlink_data)
        self.flush_timeout = flush_timeout
        logger.debug(f"初始化回调处理服务，发布器: {type(publisher).__name__}")

    def build_body(self, request_body: Mapping[str, Any], callback_timestamp: int) -> Dict[str, Any]:
        """加入 uuid 和回调时间，请求体中的同名字段优先"""
        body = {
            "uuid": str(uuid.uuid4()),
            "datetime": format_datetime(callback_timestamp),
            "localdatetime": format_datetime(callback_timestamp + PipelineConstants.LOCAL_TIME_OFFSET_MS),
            "callbackTimestamp": callback_timestamp,
        }
        body.update(request_body)
        return body

    @staticmethod
    def resolve_device(body: Mapping[str, Any], query: Mapping[str, Any]) -> Optional[str]:
        """设备ID取自请求体，其次是查询参数，统一为大写"""
        device = body.get("device")
        if device not in (None, "") and not isinstance(device, bool):
            return str(device).upper()
        if query.get("device"):
            return str(query["device"]).upper()
        return None

    def save_message(self, context: InvocationContext, message: Envelope) -> Envelope:
        """
        发布到所有设备、设备类型和设备专属队列，每个发布失败都只记录日志。

        Returns:
            标记为已分发的信封，避免再次发送
        """
        queues: List[Tuple[Optional[str], Optional[str]]] = [(TopicConstants.ALL_DEVICES, None)]
        if message.type:
            queues.append((None, message.type))
        if message.device:
            queues.append((message.device, None))

        for device, type in queues:
            try:
                publish_message(context, message, device=device, type=type)
            except Exception as e:
                context.error("save_message", e, queue_device=device, queue_type=type)

        context.log("save_message", result=message)
        return message.model_copy(update={"is_dispatched": True})

    def get_response(self, device: Optional[str], body: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """
        生成回调响应

        Returns:
            None 表示不需要下行数据（ack 为 false），
            否则为 {device: {"downlinkData": <16位十六进制>}}
        """
        if body.get("ack") in (False, "false"):
            return None
        return {device or TopicConstants.MISSING_DEVICE: {"downlinkData": self.downlink_data}}

    def process_callback(
        self,
        request_body: Mapping[str, Any],
        query: Mapping[str, Any],
        path: Optional[str] = None
    ) -> Tuple[Optional[Envelope], Optional[Dict[str, Any]]]:
        """
        处理一次 Sigfox 回调

        Args:
            request_body: 回调请求体
            query: 查询参数，type 指定设备类型，device 在请求体缺少设备ID时使用
            path: 请求路径，作为第一跳历史的来源

        Returns:
            (已分发的信封, 回调响应)；处理失败时信封为 None
        """
        start_time = self.clock()
        message: Optional[Envelope] = None

        with invocation_scope(
            PipelineConstants.CALLBACK_FUNCTION,
            self.publisher,
            source=path,
            start_time=start_time,
            clock=self.clock,
            flush_timeout=self.flush_timeout,
        ) as context:
            try:
                body = self.build_body(request_body, start_time)
                message = Envelope(
                    device=self.resolve_device(body, query),
                    type=query.get("type") or None,
                    body=parse_sigfox_message(body),
                    query=dict(query),
                    root_trace_id=uuid.uuid4().hex,
                )
                context.bind(message)
                context.log("start", body=message.body, source=path)

                stamped = record_hop(
                    message,
                    start_time,
                    path,
                    function_name=PipelineConstants.CALLBACK_FUNCTION,
                    clock=self.clock,
                )
                message = self.save_message(context, stamped)
            except Exception as e:
                context.error("callback", e, body=dict(request_body))

            response = None
            try:
                response = self.get_response(message.device if message else None, request_body)
            except Exception as e:
                context.error("response", e)
            context.log("result", result=message, response=response)

        return message, response
