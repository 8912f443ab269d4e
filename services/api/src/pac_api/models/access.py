"""对讲机门禁凭据模型。

PIN 与访问码只保存加盐哈希；同一对讲机（或对讲机 + 用户）仅允许一条生效记录，
该约束由查询过滤保证而非唯一索引。
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pac_api.models.base import Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin
from pac_api.models.enums import AccessCodeType


class IntercomMasterPin(Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin):
    """对讲机主 PIN，可直接开门并授权管理员重置他人 PIN。"""

    __tablename__ = "intercom_master_pins"
    __table_args__ = (Index("ix_intercom_master_pins_intercom_active", "intercom_id", "is_active"),)

    # 对讲机 ID。
    intercom_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # PIN 哈希，不存明文。
    pin_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    # 是否生效。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # 最近一次更新人。
    updated_by: Mapped[int | None] = mapped_column(Integer)


class IntercomUserPin(Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin):
    """用户在某台对讲机上的个人 PIN。"""

    __tablename__ = "intercom_user_pins"
    __table_args__ = (Index("ix_intercom_user_pins_intercom_user_active", "intercom_id", "user_id", "is_active"),)

    # 对讲机 ID。
    intercom_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # PIN 所属用户 ID。
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # PIN 哈希，不存明文。
    pin_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    # 是否生效。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # 最近一次更新人。
    updated_by: Mapped[int | None] = mapped_column(Integer)


class IntercomAccessCode(Base, IntPrimaryKeyMixin, OwnedMixin, TimestampMixin):
    """楼宇级或对讲机级访问码。

    `intercom_id` 为空表示楼宇内任意对讲机均可使用。
    """

    __tablename__ = "intercom_access_codes"
    __table_args__ = (
        Index("ix_intercom_access_codes_building_active", "building_id", "is_active"),
        Index("ix_intercom_access_codes_intercom_active", "intercom_id", "is_active"),
    )

    # 所属楼宇 ID。
    building_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # 限定对讲机 ID，可为空。
    intercom_id: Mapped[int | None] = mapped_column(Integer)
    # 限定住户记录 ID，可为空。
    tenant_id: Mapped[int | None] = mapped_column(Integer)
    # 访问码类型（PIN/QR）。
    code_type: Mapped[str] = mapped_column(String(10), nullable=False, default=AccessCodeType.PIN)
    # 访问码哈希，设备验证时只比对哈希。
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    # 访问码明文，仅用于接口回显与重新分发。
    code_plain: Mapped[str | None] = mapped_column(String(200))
    # 是否一次性使用，成功验证后立即失效。
    is_single_use: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # 生效起始时间，为空表示立即生效。
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 过期时间，为空表示永不过期。
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 是否生效。
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # 最近一次更新人。
    updated_by: Mapped[int | None] = mapped_column(Integer)
    # 逻辑删除时间，删除后不再出现在列表中。
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
