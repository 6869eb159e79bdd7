"""
routeMessage 步骤

由 sigfox.devices.all 队列触发，根据设备ID从路由表查出消息的路由，
例如 ['decodeStructuredMessage', 'logToWebhook']，写入信封的 route 字段。

路由查询必须保持高可用：路由表带缓存，刷新失败时沿用旧路由。
"""
from typing import Any, Mapping, Optional

from ..core.context import InvocationContext
from ..core.exceptions import RouteLookupError
from ..core.models import Envelope

STEP_NAME = "routeMessage"


def task(
    context: InvocationContext,
    device: Optional[str],
    body: Mapping[str, Any],
    envelope: Envelope
) -> Envelope:
    """
    设置消息路由。

    Raises:
        RouteLookupError: 上下文没有路由查询或查询失败
    """
    if context.route_lookup is None:
        raise RouteLookupError("No route lookup configured for routeMessage")

    # 查询结果是新列表，不会与路由缓存共享
    route = context.route_lookup.lookup_route(device)
    context.log("route_message", route=route)
    return envelope.model_copy(update={"route": list(route)})
