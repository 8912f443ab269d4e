"""ORM 模型导出集合。"""

from pac_api.models.access import IntercomAccessCode, IntercomMasterPin, IntercomUserPin
from pac_api.models.audit import IntercomAccessLog
from pac_api.models.identity import User, UserBuildingPermission, UserType
from pac_api.models.property import Building, Intercom, Tenant

__all__ = [
    "Building",
    "Intercom",
    "IntercomAccessCode",
    "IntercomAccessLog",
    "IntercomMasterPin",
    "IntercomUserPin",
    "Tenant",
    "User",
    "UserBuildingPermission",
    "UserType",
]
