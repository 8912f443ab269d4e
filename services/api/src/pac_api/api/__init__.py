"""路由模块导出集合。"""

from . import access_codes, access_logs, health, intercom_access

__all__ = [
    "access_codes",
    "access_logs",
    "health",
    "intercom_access",
]
