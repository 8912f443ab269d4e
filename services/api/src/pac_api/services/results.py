"""统一业务结果类型。

预期内的业务失败（未找到、无权限、PIN 错误等）以 `Result` 返回，
只有在接口边界才转换为 HTTP 异常。
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
    """业务失败类型。"""

    NOT_FOUND = "not_found"  # 对讲机/用户/楼宇/访问码不存在。
    NOT_ALLOWED = "not_allowed"  # 角色或归属校验不通过。
    MASTER_PIN_REQUIRED = "master_pin_required"  # 重置他人 PIN 时未提供主 PIN。
    INVALID_MASTER_PIN = "invalid_master_pin"  # 主 PIN 校验失败。
    INVALID_CREDENTIAL = "invalid_credential"  # 旧 PIN 等凭据校验失败。
    VALIDATION_ERROR = "validation_error"  # 时间窗口等业务参数不合法。
    INVALID_OR_EXPIRED = "invalid_or_expired"  # 设备验证失败，刻意不区分原因。


@dataclass(frozen=True)
class AccessError:
    """带类型的业务失败。"""

    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class Result(Generic[T]):
    """成功值或业务失败二选一。"""

    value: T | None = None
    error: AccessError | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None, message: str = "") -> "Result[T]":
        return cls(value=value, message=message)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "Result[T]":
        return cls(error=AccessError(kind=kind, message=message), message=message)

    def unwrap(self) -> T | None:
        """返回成功值，失败时抛出 ValueError（仅用于已确认成功的调用点）。"""
        if self.error is not None:
            raise ValueError(f"{self.error.kind}: {self.error.message}")
        return self.value
