"""
Sigfox 回调处理模块

此模块定义了接收 Sigfox 云端回调请求的处理器和数据模型。
回调URL示例：https://example.com/sigfox?type=gps
"""
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError

# 避免循环导入
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from .service import SigfoxCallbackService

from ..common.logger import get_logger

# 创建回调模块日志器
logger = get_logger("callback_handler")

DEFAULT_CALLBACK_PATH = "/sigfox"


# Sigfox 后台把变量作为文本发送，手工配置的回调也可能发送 JSON 原生类型
SigfoxValue = Optional[Union[str, bool, int, float]]


class SigfoxCallbackBody(BaseModel):
    """
    Sigfox 回调请求体模型

    字段对应 Sigfox 后台 Callbacks -> Body 中配置的变量，通常以文本发送，
    类型转换由 parse_sigfox_message 完成；未列出的自定义字段原样保留。
    """
    device: SigfoxValue = None
    data: SigfoxValue = None
    time: SigfoxValue = None
    duplicate: SigfoxValue = None
    snr: SigfoxValue = None
    station: SigfoxValue = None
    avgSnr: SigfoxValue = None
    lat: SigfoxValue = None
    lng: SigfoxValue = None
    rssi: SigfoxValue = None
    seqNumber: SigfoxValue = None
    ack: SigfoxValue = None
    longPolling: SigfoxValue = None

    model_config = ConfigDict(extra="allow", strict=True)


def parse_callback_body(payload: Any) -> Dict[str, Any]:
    """
    校验回调请求体，类型不合法的字段被丢弃，其余字段保留。

    Args:
        payload: 解析后的 JSON 请求体

    Returns:
        去掉空值的请求体字典

    Raises:
        ValueError: 请求体不是 JSON 对象
    """
    if not isinstance(payload, dict):
        raise ValueError("Callback body must be a JSON object")
    try:
        return SigfoxCallbackBody(**payload).model_dump(exclude_none=True)
    except ValidationError as e:
        invalid = {error["loc"][0] for error in e.errors() if error["loc"]}
        logger.warning(f"回调请求体字段类型不合法，已忽略: {sorted(invalid)}")
        valid = {key: value for key, value in payload.items() if key not in invalid}
        return SigfoxCallbackBody(**valid).model_dump(exclude_none=True)


class SigfoxCallbackHandler:
    """
    Sigfox 回调处理器类

    负责接收回调请求并交给回调处理服务；无论处理结果如何都会应答 Sigfox 云端，
    避免 Sigfox 重发同一条消息。
    """

    def __init__(self, callback_service: 'SigfoxCallbackService', callback_path: str = DEFAULT_CALLBACK_PATH):
        """
        初始化回调处理器

        Args:
            callback_service: 回调处理服务实例
            callback_path: 回调请求路径
        """
        self.callback_service = callback_service
        self.callback_path = callback_path
        self.router = APIRouter()
        self._setup_routes()
        logger.info("Sigfox 回调处理器初始化完成")

    def _setup_routes(self) -> None:
        """设置路由处理函数"""
        self.router.add_api_route(
            self.callback_path,
            self.handle_callback,
            methods=["POST"],
            summary="处理 Sigfox 回调",
            description="接收 Sigfox 云端推送的设备消息并发布到队列"
        )
        logger.info(f"注册 Sigfox 回调路由: {self.callback_path}")

    async def handle_callback(self, request: Request) -> Response:
        """
        处理 Sigfox 回调请求

        Args:
            request: FastAPI请求对象，包含JSON格式的回调数据

        Returns:
            ack 为 false 时返回 204（没有下行数据），
            否则返回 200 和 {device: {"downlinkData": ...}}
        """
        client_host = request.client.host if request.client else "unknown"
        logger.debug(f"收到 Sigfox 回调: 客户端IP={client_host}")

        try:
            body: Dict[str, Any] = parse_callback_body(await request.json())
        except Exception as e:
            logger.warning(f"无法解析回调请求体: {str(e)}")
            body = {}

        message, response = self.callback_service.process_callback(
            body,
            dict(request.query_params),
            path=request.url.path
        )
        if message is not None:
            logger.info(f"Sigfox 回调处理完成: device={message.device}, type={message.type}")

        if response is None:
            return Response(status_code=204)
        return JSONResponse(status_code=200, content=response)
