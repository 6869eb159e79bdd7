"""
路由表。

把设备ID映射为有序的步骤列表，例如 ['decodeStructuredMessage', 'logToWebhook']。
路由表保存在配置文件的 routes 段中：

```yaml
routes:
  default_route: "decodeStructuredMessage, logToWebhook"
  table:
    - devices: ["1C8A7E", "1C88B1"]
      route: ["decodeStructuredMessage", "logToWebhook"]
```
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..common.config import get_section
from ..common.logger import get_logger
from .cache import ExpiringCache
from .constants import ErrorMessages, PipelineConstants
from .exceptions import RouteLookupError
from .interfaces import IRouteLookup

logger = get_logger("routing")


def parse_route(value: Any) -> List[str]:
    """
    解析路由，支持列表或逗号分隔的字符串（忽略空白）。

    'decodeStructuredMessage, logToWebhook' -> ['decodeStructuredMessage', 'logToWebhook']
    """
    if value is None:
        return []
    if isinstance(value, str):
        steps = "".join(value.split()).split(",")
    else:
        steps = [str(step).strip() for step in value]
    return [step for step in steps if step]


@dataclass(frozen=True)
class RouteEntry:
    devices: Tuple[str, ...]
    route: Tuple[str, ...]


@dataclass
class RouteTable:
    """静态路由表，未匹配的设备使用默认路由"""
    entries: List[RouteEntry] = field(default_factory=list)
    default_route: Tuple[str, ...] = ()

    @classmethod
    def from_config(cls, routes_config: Dict[str, Any]) -> "RouteTable":
        entries = []
        for item in routes_config.get("table") or []:
            devices = tuple(str(device).upper() for device in item.get("devices") or [])
            entries.append(RouteEntry(devices=devices, route=tuple(parse_route(item.get("route")))))
        default_route = routes_config.get("default_route", routes_config.get(PipelineConstants.DEFAULT_ROUTE_KEY))
        return cls(entries=entries, default_route=tuple(parse_route(default_route)))

    def lookup_route(self, device: Optional[str]) -> List[str]:
        if device:
            device = device.upper()
            for entry in self.entries:
                if device in entry.devices:
                    return list(entry.route)
        return list(self.default_route)

    def devices(self) -> Iterable[str]:
        for entry in self.entries:
            yield from entry.devices


class ConfigRouteSource:
    """每次查询都重新读取配置文件中的路由表，便于在线修改路由"""

    def lookup_route(self, device: Optional[str]) -> List[str]:
        return RouteTable.from_config(get_section("routes")).lookup_route(device)


class CachedRouteLookup:
    """
    带缓存的路由查询。

    缓存过期后从 source 重新加载；加载失败时继续使用旧路由，
    没有旧路由时抛出 RouteLookupError。
    """

    def __init__(
        self,
        source: IRouteLookup,
        cache: Optional[ExpiringCache] = None,
        ttl: float = PipelineConstants.DEFAULT_ROUTE_CACHE_TTL
    ):
        self.source = source
        self.cache = cache or ExpiringCache()
        self.ttl = ttl

    def lookup_route(self, device: Optional[str]) -> List[str]:
        try:
            route = self.cache.get_or_refresh(
                ("route", device),
                self.ttl,
                lambda: self.source.lookup_route(device)
            )
        except Exception as e:
            logger.error(f"{ErrorMessages.ROUTE_LOOKUP_ERROR}: device={device}, error={e}")
            raise RouteLookupError(f"{ErrorMessages.ROUTE_LOOKUP_ERROR}: {e}") from e
        # 返回副本，调用方修改不会影响缓存
        return list(route)
