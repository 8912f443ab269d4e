"""领域枚举定义。"""

from enum import StrEnum


class UserRole(StrEnum):
    """令牌中的用户角色。"""

    SUPER_ADMIN = "SuperAdmin"  # 平台超级管理员，绕过楼宇访问校验。
    PROPERTY_MANAGER = "PropertyManager"  # 物业经理，管理自有楼宇。
    FRONT_DESK = "FrontDesk"  # 前台等楼宇运营人员。
    TENANT = "Tenant"  # 住户，仅能管理自己创建的访问码。

    @classmethod
    def normalize(cls, value: str | None) -> "UserRole | None":
        """宽松解析角色名，忽略大小写、空格、下划线与连字符。"""
        if not value:
            return None
        compact = "".join(ch for ch in value if ch.isalnum()).lower()
        for role in cls:
            if role.value.lower() == compact:
                return role
        return None


class DataAccessMode(StrEnum):
    """用户类型上的数据可见性模式。"""

    ALL = "ALL"  # 不做过滤。
    OWN = "OWN"  # 仅可见自己创建的数据。
    PM = "PM"  # 可见所属物业经理生态内创建的数据。


class CredentialType(StrEnum):
    """审计日志中的凭据类型。"""

    MASTER = "Master"  # 对讲机主 PIN。
    USER = "User"  # 用户个人 PIN。
    ACCESS_CODE = "AccessCode"  # 楼宇/对讲机访问码。
    NONE = "None"  # 未匹配任何凭据。


class AccessCodeType(StrEnum):
    """访问码类型。"""

    PIN = "PIN"  # 数字 PIN 码。
    QR = "QR"  # 二维码载荷（图片渲染不在本服务内）。
