"""对讲机门禁相关请求结构。"""

from datetime import datetime

from pydantic import Field, field_validator

from pac_api.core.config import get_settings
from pac_api.schemas.common import RequestSchema


def _check_pin(value: str) -> str:
    """PIN 长度限制来自配置。"""
    settings = get_settings()
    if not settings.pin_min_length <= len(value) <= settings.pin_max_length:
        raise ValueError(f"pin length must be between {settings.pin_min_length} and {settings.pin_max_length}")
    return value


def _check_code(value: str) -> str:
    settings = get_settings()
    if not settings.pin_min_length <= len(value) <= settings.access_code_max_length:
        raise ValueError(
            f"code length must be between {settings.pin_min_length} and {settings.access_code_max_length}"
        )
    return value


class MasterPinSetRequest(RequestSchema):
    """设置/轮换主 PIN 请求体。"""

    pin: str = Field(description="新的主 PIN。", examples=["123456"])

    @field_validator("pin")
    @classmethod
    def validate_pin(cls, value: str) -> str:
        return _check_pin(value)


class UserPinSetRequest(RequestSchema):
    """设置/重置用户 PIN 请求体。"""

    pin: str = Field(description="新的用户 PIN。", examples=["2468"])
    master_pin: str | None = Field(
        default=None,
        alias="masterPin",
        description="重置他人 PIN 时必填，需与该对讲机当前主 PIN 一致。",
    )

    @field_validator("pin")
    @classmethod
    def validate_pin(cls, value: str) -> str:
        return _check_pin(value)


class OwnPinUpdateRequest(RequestSchema):
    """本人 PIN 修改请求体。"""

    new_pin: str = Field(alias="newPin", description="新的个人 PIN。", examples=["1357"])
    old_pin: str | None = Field(default=None, alias="oldPin", description="已设置过 PIN 时必填。")

    @field_validator("new_pin")
    @classmethod
    def validate_new_pin(cls, value: str) -> str:
        return _check_pin(value)


class VerifyPinRequest(RequestSchema):
    """设备验证请求体。"""

    # 长度不在此处校验：设备请求无论输入如何都要返回 200 并写入审计日志。
    pin: str = Field(default="", description="设备采集到的 PIN 或访问码。", examples=["9999"])


class AccessCodeCreateRequest(RequestSchema):
    """创建访问码请求体。"""

    code: str = Field(description="访问码明文。", examples=["9999"])
    building_id: int | None = Field(default=None, alias="buildingId", description="所属楼宇 ID，住户可省略。")
    intercom_id: int | None = Field(default=None, alias="intercomId", description="限定对讲机 ID，为空表示楼宇内通用。")
    tenant_id: int | None = Field(default=None, alias="tenantId", description="限定住户记录 ID。")
    is_single_use: bool = Field(default=False, alias="isSingleUse", description="是否一次性使用。")
    valid_from: datetime | None = Field(default=None, alias="validFrom", description="生效时间，为空表示立即生效。")
    expires_at: datetime | None = Field(default=None, alias="expiresAt", description="过期时间，为空表示永不过期。")

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str) -> str:
        return _check_code(value)


class AccessCodeUpdateRequest(RequestSchema):
    """更新访问码请求体，未传字段保持不变。"""

    code: str | None = Field(default=None, description="新的访问码明文。")
    is_single_use: bool | None = Field(default=None, alias="isSingleUse", description="是否一次性使用。")
    valid_from: datetime | None = Field(default=None, alias="validFrom", description="新的生效时间。")
    expires_at: datetime | None = Field(default=None, alias="expiresAt", description="新的过期时间。")

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return _check_code(value)
