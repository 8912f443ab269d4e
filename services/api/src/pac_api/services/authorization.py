"""门禁凭据管理授权规则。

角色与操作的对应关系集中在 `ROLE_OPERATIONS` 声明式策略表中，
AuthorizationGuard 只查表并叠加楼宇归属、主 PIN 校验等上下文规则。
"""

import logging
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy import select
from sqlalchemy.orm import Session

from pac_api.models.access import IntercomAccessCode
from pac_api.models.enums import UserRole
from pac_api.models.property import Building, Tenant
from pac_api.services.access_scope import AccessScopeResolver
from pac_api.services.credential_store import find_active_master_pin
from pac_api.services.pin_hashing import verify_secret
from pac_api.services.results import ErrorKind, Result

logger = logging.getLogger("pac_api.authorization")

MSG_NOT_ALLOWED = "Not allowed."
MSG_NOT_ALLOWED_FOR_BUILDING = "Not allowed for this building."


class CredentialOperation(StrEnum):
    """凭据管理操作定义。"""

    SET_MASTER_PIN = "master_pin.set"
    RESET_OTHER_USER_PIN = "user_pin.reset_other"
    VIEW_INTERCOM_LOGS = "access_log.view_intercom"
    QUERY_ACCESS_LOGS = "access_log.query"
    MANAGE_ACCESS_CODES = "access_code.manage"
    BYPASS_BUILDING_ACCESS = "building.bypass"
    TENANT_SCOPED_CODES = "access_code.tenant_scoped"


_COMMON_OPERATIONS = frozenset(
    {
        CredentialOperation.QUERY_ACCESS_LOGS,
        CredentialOperation.MANAGE_ACCESS_CODES,
    }
)

ROLE_OPERATIONS: dict[UserRole, frozenset[CredentialOperation]] = {
    UserRole.SUPER_ADMIN: _COMMON_OPERATIONS
    | {
        CredentialOperation.SET_MASTER_PIN,
        CredentialOperation.RESET_OTHER_USER_PIN,
        CredentialOperation.VIEW_INTERCOM_LOGS,
        CredentialOperation.BYPASS_BUILDING_ACCESS,
    },
    UserRole.PROPERTY_MANAGER: _COMMON_OPERATIONS,
    UserRole.FRONT_DESK: _COMMON_OPERATIONS,
    UserRole.TENANT: _COMMON_OPERATIONS | {CredentialOperation.TENANT_SCOPED_CODES},
}


def role_allows(role: UserRole | None, operation: CredentialOperation) -> bool:
    """查询策略表。

    自定义用户类型签发的角色无法识别（None），按普通员工对待：
    具备公共操作，数据范围仍由楼宇授权与归属决定。
    """
    return operation in ROLE_OPERATIONS.get(role, _COMMON_OPERATIONS)


@dataclass(frozen=True)
class Actor:
    """已认证的调用方。"""

    user_id: int
    role: UserRole | None

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    @property
    def is_tenant(self) -> bool:
        return role_allows(self.role, CredentialOperation.TENANT_SCOPED_CODES)


class AuthorizationGuard:
    """按调用方角色、身份与目标对象判定凭据管理操作。"""

    def __init__(self, db: Session, resolver: AccessScopeResolver | None = None) -> None:
        self.db = db
        self.resolver = resolver or AccessScopeResolver(db)

    def _require(self, actor: Actor, operation: CredentialOperation) -> Result[None]:
        if role_allows(actor.role, operation):
            return Result.success()
        logger.info("operation denied: user_id=%s role=%s operation=%s", actor.user_id, actor.role, operation)
        return Result.failure(ErrorKind.NOT_ALLOWED, MSG_NOT_ALLOWED)

    def authorize_set_master_pin(self, actor: Actor) -> Result[None]:
        """设置/轮换主 PIN 仅限超级管理员。"""
        if not role_allows(actor.role, CredentialOperation.SET_MASTER_PIN):
            return Result.failure(ErrorKind.NOT_ALLOWED, "Only Super Admin can manage master pin.")
        return Result.success()

    def authorize_user_pin_reset(
        self,
        actor: Actor,
        *,
        intercom_id: int,
        target_user_id: int,
        master_pin: str | None,
    ) -> Result[None]:
        """重置用户 PIN。

        规则：
        1. 本人重置自己的 PIN 直接放行。
        2. 重置他人 PIN 需要超级管理员角色，并提供该对讲机当前主 PIN（哈希校验）。
        """
        if actor.user_id == target_user_id:
            return Result.success()

        allowed = self._require(actor, CredentialOperation.RESET_OTHER_USER_PIN)
        if not allowed.ok:
            return allowed
        if not master_pin:
            return Result.failure(ErrorKind.MASTER_PIN_REQUIRED, "Master pin required to reset another user's pin.")

        master = find_active_master_pin(self.db, intercom_id=intercom_id)
        if master is None or not verify_secret(master_pin, master.pin_hash):
            logger.warning(
                "master pin check failed: intercom_id=%s actor_user_id=%s target_user_id=%s",
                intercom_id,
                actor.user_id,
                target_user_id,
            )
            return Result.failure(ErrorKind.INVALID_MASTER_PIN, "Invalid master pin.")
        return Result.success()

    def authorize_view_intercom_logs(self, actor: Actor) -> Result[None]:
        """按对讲机查看日志仅限超级管理员。"""
        return self._require(actor, CredentialOperation.VIEW_INTERCOM_LOGS)

    def has_building_access(self, actor: Actor, building_id: int) -> bool:
        """判断是否可管理楼宇内的门禁数据。

        超级管理员无条件放行；其他角色需显式楼宇授权，或是楼宇的所属物业经理/创建人。
        """
        if role_allows(actor.role, CredentialOperation.BYPASS_BUILDING_ACCESS):
            return True
        return building_id in self.resolver.accessible_building_ids(actor.user_id)

    def tenant_building_id(self, actor: Actor) -> int | None:
        """解析住户入住的楼宇。"""
        return self.db.execute(
            select(Tenant.building_id).where(Tenant.user_id == actor.user_id).order_by(Tenant.id).limit(1)
        ).scalar_one_or_none()

    def resolve_code_building(self, actor: Actor, requested_building_id: int | None) -> Result[int]:
        """确定新访问码归属的楼宇并校验调用方权限。"""
        allowed = self._require(actor, CredentialOperation.MANAGE_ACCESS_CODES)
        if not allowed.ok:
            return Result.failure(allowed.error.kind, allowed.error.message)

        if actor.is_tenant:
            building_id = self.tenant_building_id(actor)
            if building_id is None:
                return Result.failure(ErrorKind.NOT_FOUND, "Tenant building not found.")
            if requested_building_id is not None and requested_building_id != building_id:
                return Result.failure(ErrorKind.NOT_ALLOWED, MSG_NOT_ALLOWED_FOR_BUILDING)
            if self.db.get(Building, building_id) is None:
                return Result.failure(ErrorKind.NOT_FOUND, f"Building {building_id} not found.")
            return Result.success(building_id)

        if requested_building_id is None:
            return Result.failure(ErrorKind.VALIDATION_ERROR, "BuildingId is required.")
        if self.db.get(Building, requested_building_id) is None:
            return Result.failure(ErrorKind.NOT_FOUND, f"Building {requested_building_id} not found.")
        if not self.has_building_access(actor, requested_building_id):
            return Result.failure(ErrorKind.NOT_ALLOWED, MSG_NOT_ALLOWED_FOR_BUILDING)
        return Result.success(requested_building_id)

    def authorize_code_mutation(self, actor: Actor, code: IntercomAccessCode) -> Result[None]:
        """更新/停用/删除访问码：住户只能操作自己创建的访问码，其他角色需楼宇访问权限。"""
        allowed = self._require(actor, CredentialOperation.MANAGE_ACCESS_CODES)
        if not allowed.ok:
            return allowed
        if actor.is_tenant:
            if code.owner_id != actor.user_id:
                return Result.failure(ErrorKind.NOT_ALLOWED, MSG_NOT_ALLOWED)
            return Result.success()
        if not self.has_building_access(actor, code.building_id):
            return Result.failure(ErrorKind.NOT_ALLOWED, MSG_NOT_ALLOWED_FOR_BUILDING)
        return Result.success()
