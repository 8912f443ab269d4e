"""接口成功响应 `data` 字段结构定义。

说明：
1. 所有业务接口统一返回 `SuccessResponse[data=...]`。
2. 本文件专注于定义各接口在 `data` 中的业务字段。
3. PIN 哈希与访问码哈希不会出现在任何响应中。
"""

from datetime import datetime

from pydantic import AliasChoices, Field, field_serializer

from pac_api.models.base import ensure_utc
from pac_api.schemas.common import BaseSchema


class HealthStatusData(BaseSchema):
    """健康检查返回结构。"""

    status: str = Field(description="健康状态值，常见为 ok 或 ready。")


class PinOperationData(BaseSchema):
    """PIN 设置/修改结果。"""

    intercom_id: int = Field(description="对讲机 ID。")
    user_id: int | None = Field(default=None, description="PIN 所属用户 ID，主 PIN 为空。")
    credential_ref_id: int = Field(description="PIN 记录 ID。")
    message: str = Field(description="操作结果描述，例如 Pin created.")


class VerifyResultData(BaseSchema):
    """设备验证结果。"""

    granted: bool = Field(description="是否放行。")
    reason: str = Field(description="结果原因：OK / Intercom not found / Invalid or expired。")
    credential_type: str = Field(description="命中的凭据类型（Master/User/AccessCode/None）。")
    credential_ref_id: int | None = Field(default=None, description="命中的凭据记录 ID。")
    timestamp: datetime = Field(description="判定时间（UTC）。")


class AccessCodeData(BaseSchema):
    """访问码视图。"""

    id: int = Field(description="访问码 ID。")
    building_id: int = Field(description="所属楼宇 ID。")
    intercom_id: int | None = Field(default=None, description="限定对讲机 ID，为空表示楼宇内通用。")
    tenant_id: int | None = Field(default=None, description="限定住户记录 ID。")
    code_type: str = Field(description="访问码类型（PIN/QR）。")
    code: str | None = Field(
        default=None,
        validation_alias=AliasChoices("code_plain", "code"),
        description="访问码明文，便于展示与重新分发。",
    )
    is_single_use: bool = Field(description="是否一次性使用。")
    valid_from: datetime | None = Field(default=None, description="生效时间。")
    expires_at: datetime | None = Field(default=None, description="过期时间，为空表示永不过期。")
    is_active: bool = Field(description="是否生效。")
    created_by: int | None = Field(default=None, description="创建人用户 ID。")
    created_at: datetime = Field(description="创建时间。")

    @field_serializer("valid_from", "expires_at", "created_at")
    def serialize_utc(self, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class AccessLogData(BaseSchema):
    """门禁审计记录视图。"""

    id: int = Field(description="日志 ID。")
    intercom_id: int | None = Field(default=None, description="对讲机 ID。")
    building_id: int | None = Field(default=None, description="楼宇 ID。")
    user_id: int | None = Field(default=None, description="关联用户 ID。")
    credential_type: str = Field(description="凭据类型。")
    credential_ref_id: int | None = Field(default=None, description="凭据记录 ID。")
    is_success: bool = Field(description="是否成功。")
    reason: str | None = Field(default=None, description="结果原因。")
    occurred_at: datetime = Field(description="发生时间。")
    ip_address: str | None = Field(default=None, description="客户端 IP。")
    device_info: str | None = Field(default=None, description="客户端设备信息。")

    @field_serializer("occurred_at")
    def serialize_utc(self, value: datetime) -> datetime:
        return ensure_utc(value)


class AccessCodePageData(BaseSchema):
    """访问码分页结果。"""

    total: int = Field(description="符合条件的总记录数。")
    page: int = Field(description="当前页码（从 1 开始）。")
    page_size: int = Field(description="每页条数。")
    items: list[AccessCodeData] = Field(default_factory=list, description="当前页访问码。")


class AccessLogPageData(BaseSchema):
    """审计日志分页结果。"""

    total: int = Field(description="符合条件的总记录数。")
    page: int = Field(description="当前页码（从 1 开始）。")
    page_size: int = Field(description="每页条数。")
    items: list[AccessLogData] = Field(default_factory=list, description="当前页日志，最新优先。")
