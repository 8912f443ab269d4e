"""楼宇、对讲机与住户模型（由物业管理模块维护，本服务只读）。"""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pac_api.models.base import Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin


class Building(Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin):
    """楼宇，所有门禁数据的租户隔离边界。"""

    __tablename__ = "buildings"

    # 楼宇名称。
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # 所属物业经理（客户）用户 ID。
    customer_id: Mapped[int | None] = mapped_column(Integer, index=True)
    # 是否启用。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Intercom(Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin):
    """安装在楼宇内的对讲机设备。"""

    __tablename__ = "intercoms"

    # 设备名称。
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # 所在楼宇 ID。
    building_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # 是否启用。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Tenant(Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin):
    """住户入住记录，将住户用户与楼宇关联。"""

    __tablename__ = "tenants"

    # 住户用户 ID。
    user_id: Mapped[int | None] = mapped_column(Integer, index=True)
    # 入住楼宇 ID。
    building_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # 住户展示名。
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
