"""门禁审计日志模型。"""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pac_api.models.base import Base, BigIntPK, utc_now


class IntercomAccessLog(Base):
    """每次设备验证与凭据变更的只追加记录，写入后不再修改或删除。"""

    __tablename__ = "intercom_access_logs"
    __table_args__ = (
        Index("ix_intercom_access_logs_intercom_occurred", "intercom_id", "occurred_at"),
        Index("ix_intercom_access_logs_building_occurred", "building_id", "occurred_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True, comment="主键 ID。")
    # 对讲机 ID；楼宇级访问码的管理操作可为空。
    intercom_id: Mapped[int | None] = mapped_column(Integer)
    # 所属楼宇 ID，冗余存储便于按楼宇过滤。
    building_id: Mapped[int | None] = mapped_column(Integer)
    # 关联用户 ID；匿名设备调用可为空。
    user_id: Mapped[int | None] = mapped_column(Integer, index=True)
    # 凭据类型（Master/User/AccessCode/None）。
    credential_type: Mapped[str] = mapped_column(String(20), nullable=False)
    # 凭据记录 ID。
    credential_ref_id: Mapped[int | None] = mapped_column(BigInteger)
    # 是否成功。
    is_success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    # 结果原因，例如 OK / Invalid or expired / Master pin set/updated。
    reason: Mapped[str | None] = mapped_column(String(200))
    # 发生时间。
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    # 客户端 IP。
    ip_address: Mapped[str | None] = mapped_column(String(64))
    # 客户端设备信息（User-Agent）。
    device_info: Mapped[str | None] = mapped_column(String(200))
