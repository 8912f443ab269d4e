"""用户与用户类型模型（由用户管理模块维护，本服务只读）。"""

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pac_api.models.base import Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin
from pac_api.models.enums import DataAccessMode

# 内置用户类型 ID，与用户类型种子数据保持一致。
SUPER_ADMIN_USER_TYPE_ID = 1
PROPERTY_MANAGER_USER_TYPE_ID = 2


class UserType(Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin):
    """用户类型，决定数据可见性模式。"""

    __tablename__ = "user_types"

    # 用户类型名称，例如 Super Admin / Property Manager / Front Desk。
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # 数据可见性模式（ALL/OWN/PM），未知值按 ALL 处理。
    data_access_control: Mapped[str | None] = mapped_column(String(10), default=DataAccessMode.ALL)
    # 是否启用。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class User(Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin):
    """平台用户。

    `created_by` 记录开通该账号的用户，是物业经理生态解析的依据。
    """

    __tablename__ = "users"

    # 登录邮箱，全局唯一。
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    # 展示名。
    display_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    # 用户类型 ID（逻辑关联 user_types.id）。
    user_type_id: Mapped[int | None] = mapped_column(Integer, index=True)
    # 是否启用。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class UserBuildingPermission(Base, IntPrimaryKeyMixin, TimestampMixin):
    """用户对楼宇的显式授权。"""

    __tablename__ = "user_building_permissions"
    __table_args__ = (UniqueConstraint("user_id", "building_id", name="uk_user_building_permission"),)

    # 被授权用户 ID。
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # 被授权楼宇 ID。
    building_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # 授权是否生效。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
