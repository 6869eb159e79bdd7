"""
Sigfox 回调服务（sigfoxCallback）

接收 Sigfox 云端的 HTTP 回调，把设备消息发布到流水线的入口队列。
"""
from .app import create_app
from .service import SigfoxCallbackService, parse_sigfox_message
from .webhook_handler import SigfoxCallbackBody, SigfoxCallbackHandler

__all__ = [
    "create_app",
    "SigfoxCallbackService",
    "parse_sigfox_message",
    "SigfoxCallbackBody",
    "SigfoxCallbackHandler",
]
