"""对象映射基础模型与通用混入。"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Integer, MetaData, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite 仅对 INTEGER PRIMARY KEY 自增，测试环境下将 BIGINT 降级为 INTEGER。
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


def utc_now() -> datetime:
    """返回带时区的当前 UTC 时间。"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """将无时区时间视为 UTC，有时区时间统一转换到 UTC。

    SQLite 读回的时间不带时区，与带时区时间比较前必须先规范化。
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """全局对象映射声明基类。"""

    metadata = MetaData(
        naming_convention={
            # 统一约束/索引命名规范（无外键场景）。
            "pk": "pk_%(table_name)s",
            "ix": "ix_%(table_name)s_%(column_0_name)s",
            "uq": "uk_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
        }
    )


class IntPrimaryKeyMixin:
    """提供统一自增整型主键字段。"""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键 ID。")


class TimestampMixin:
    """提供创建时间与更新时间字段。"""

    # 记录创建时间，由应用侧写入以保留微秒精度，保证“最新优先”排序稳定。
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        comment="创建时间。",
    )
    # 记录最后更新时间。
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=utc_now,
        comment="更新时间。",
    )


class OwnedMixin:
    """提供创建人字段，并实现 `HasOwner` 能力接口。"""

    # 创建人用户 ID（逻辑关联 users.id，不声明数据库外键）。
    created_by: Mapped[int | None] = mapped_column(Integer, index=True, comment="创建人用户 ID。")

    @property
    def owner_id(self) -> int | None:
        """数据可见性判断使用的归属人 ID。"""
        return self.created_by
