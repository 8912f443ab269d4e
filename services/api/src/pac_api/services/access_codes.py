"""访问码管理服务。

访问码可限定到楼宇（任意对讲机可用）或具体对讲机，支持一次性使用与有效期窗口。
每次创建、修改、启停、删除都会写入一条审计记录（失败同样记录）。
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pac_api.models.access import IntercomAccessCode
from pac_api.models.base import ensure_utc, utc_now
from pac_api.models.enums import AccessCodeType, CredentialType
from pac_api.models.property import Intercom, Tenant
from pac_api.services.access_scope import AccessScopeResolver
from pac_api.services.audit import AuditLedger, ClientInfo, normalize_page
from pac_api.services.authorization import Actor, AuthorizationGuard
from pac_api.services.pin_hashing import hash_secret
from pac_api.services.results import ErrorKind, Result

logger = logging.getLogger("pac_api.access_codes")


def validate_window(
    valid_from: datetime | None,
    expires_at: datetime | None,
    *,
    now: datetime | None = None,
) -> Result[None]:
    """校验有效期窗口：过期时间必须晚于当前时间，且晚于生效时间。"""
    now = now or utc_now()
    valid_from = ensure_utc(valid_from)
    expires_at = ensure_utc(expires_at)
    if expires_at is not None and expires_at <= now:
        return Result.failure(ErrorKind.VALIDATION_ERROR, "Expiry must be in the future.")
    if valid_from is not None and expires_at is not None and expires_at <= valid_from:
        return Result.failure(ErrorKind.VALIDATION_ERROR, "Expiry must be after valid-from.")
    return Result.success()


class AccessCodeService:
    """访问码增删改查。"""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.resolver = AccessScopeResolver(db)
        self.guard = AuthorizationGuard(db, self.resolver)
        self.ledger = AuditLedger(db, self.resolver)

    def _record(
        self,
        *,
        actor: Actor,
        is_success: bool,
        reason: str,
        building_id: int | None,
        intercom_id: int | None,
        code_id: int | None,
        client: ClientInfo,
    ) -> None:
        self.ledger.append(
            intercom_id=intercom_id,
            building_id=building_id,
            user_id=actor.user_id,
            credential_type=CredentialType.ACCESS_CODE,
            credential_ref_id=code_id,
            is_success=is_success,
            reason=reason,
            ip_address=client.ip_address,
            device_info=client.device_info,
        )
        self.db.commit()

    def _reject(
        self,
        result: Result,
        *,
        actor: Actor,
        client: ClientInfo,
        building_id: int | None = None,
        intercom_id: int | None = None,
        code_id: int | None = None,
    ) -> Result:
        self._record(
            actor=actor,
            is_success=False,
            reason=result.message,
            building_id=building_id,
            intercom_id=intercom_id,
            code_id=code_id,
            client=client,
        )
        logger.info(
            "access code mutation rejected: actor_user_id=%s code_id=%s kind=%s",
            actor.user_id,
            code_id,
            result.error.kind,
        )
        return result

    def _commit_code(self, code: IntercomAccessCode, *, actor: Actor, reason: str, client: ClientInfo) -> None:
        self.db.flush()
        self._record(
            actor=actor,
            is_success=True,
            reason=reason,
            building_id=code.building_id,
            intercom_id=code.intercom_id,
            code_id=code.id,
            client=client,
        )
        logger.info("%s: code_id=%s building_id=%s actor_user_id=%s", reason, code.id, code.building_id, actor.user_id)

    def list_codes(
        self,
        actor: Actor,
        *,
        building_id: int | None = None,
        intercom_id: int | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> tuple[list[IntercomAccessCode], int]:
        """分页列出调用方可见的访问码（最新优先，已删除的不返回）。

        规则：
        1. 超级管理员可见全部。
        2. 住户仅可见自己创建的访问码。
        3. 其他角色可见其可访问楼宇内的访问码，并叠加自身数据可见性模式。
        """
        page, page_size = normalize_page(page, page_size)
        stmt = select(IntercomAccessCode).where(IntercomAccessCode.deleted_at.is_(None))
        if actor.is_tenant:
            stmt = stmt.where(IntercomAccessCode.created_by == actor.user_id)
        elif not actor.is_super_admin:
            building_ids = self.resolver.accessible_building_ids(actor.user_id)
            stmt = stmt.where(IntercomAccessCode.building_id.in_(sorted(building_ids)))
            stmt = stmt.where(self.resolver.scope_clause(actor.user_id, IntercomAccessCode.created_by))

        if building_id is not None:
            stmt = stmt.where(IntercomAccessCode.building_id == building_id)
        if intercom_id is not None:
            stmt = stmt.where(IntercomAccessCode.intercom_id == intercom_id)

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        items = (
            self.db.execute(
                stmt.order_by(IntercomAccessCode.created_at.desc(), IntercomAccessCode.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            .scalars()
            .all()
        )
        return list(items), total

    def create_code(
        self,
        actor: Actor,
        *,
        code: str,
        building_id: int | None = None,
        intercom_id: int | None = None,
        tenant_id: int | None = None,
        is_single_use: bool = False,
        valid_from: datetime | None = None,
        expires_at: datetime | None = None,
        client: ClientInfo | None = None,
    ) -> Result[IntercomAccessCode]:
        """创建访问码，当前仅支持 PIN 类型。"""
        client = client or ClientInfo()
        resolved = self.guard.resolve_code_building(actor, building_id)
        if not resolved.ok:
            return self._reject(resolved, actor=actor, client=client, building_id=building_id, intercom_id=intercom_id)
        target_building_id = resolved.value

        reject_kwargs = {"actor": actor, "client": client, "building_id": target_building_id}
        if intercom_id is not None:
            intercom = self.db.get(Intercom, intercom_id)
            if intercom is None:
                return self._reject(Result.failure(ErrorKind.NOT_FOUND, f"Intercom {intercom_id} not found."), **reject_kwargs)
            if intercom.building_id != target_building_id:
                return self._reject(
                    Result.failure(ErrorKind.VALIDATION_ERROR, "Intercom does not belong to the specified building."),
                    intercom_id=intercom_id,
                    **reject_kwargs,
                )

        window = validate_window(valid_from, expires_at)
        if not window.ok:
            return self._reject(window, intercom_id=intercom_id, **reject_kwargs)

        if tenant_id is not None:
            tenant = self.db.get(Tenant, tenant_id)
            if tenant is None:
                return self._reject(
                    Result.failure(ErrorKind.NOT_FOUND, f"Tenant {tenant_id} not found."),
                    intercom_id=intercom_id,
                    **reject_kwargs,
                )
            if tenant.building_id != target_building_id:
                return self._reject(
                    Result.failure(ErrorKind.VALIDATION_ERROR, "Tenant does not belong to the specified building."),
                    intercom_id=intercom_id,
                    **reject_kwargs,
                )

        entity = IntercomAccessCode(
            building_id=target_building_id,
            intercom_id=intercom_id,
            tenant_id=tenant_id,
            code_type=AccessCodeType.PIN,
            code_hash=hash_secret(code),
            code_plain=code,
            is_single_use=is_single_use,
            valid_from=ensure_utc(valid_from),
            expires_at=ensure_utc(expires_at),
            is_active=True,
            created_by=actor.user_id,
        )
        self.db.add(entity)
        self._commit_code(entity, actor=actor, reason="Access code created", client=client)
        return Result.success(entity, "Access code created.")

    def _load_for_mutation(self, actor: Actor, code_id: int, client: ClientInfo) -> Result[IntercomAccessCode]:
        entity = self.db.get(IntercomAccessCode, code_id)
        if entity is None or entity.deleted_at is not None:
            return self._reject(
                Result.failure(ErrorKind.NOT_FOUND, f"Access code {code_id} not found."),
                actor=actor,
                client=client,
                code_id=code_id,
            )
        allowed = self.guard.authorize_code_mutation(actor, entity)
        if not allowed.ok:
            return self._reject(
                allowed,
                actor=actor,
                client=client,
                building_id=entity.building_id,
                intercom_id=entity.intercom_id,
                code_id=entity.id,
            )
        return Result.success(entity)

    def update_code(
        self,
        actor: Actor,
        code_id: int,
        *,
        code: str | None = None,
        is_single_use: bool | None = None,
        valid_from: datetime | None = None,
        expires_at: datetime | None = None,
        client: ClientInfo | None = None,
    ) -> Result[IntercomAccessCode]:
        """修改访问码的可变字段，未传入的字段保持不变；楼宇与对讲机不可修改。"""
        client = client or ClientInfo()
        loaded = self._load_for_mutation(actor, code_id, client)
        if not loaded.ok:
            return loaded
        entity = loaded.value

        now = utc_now()
        if expires_at is not None and ensure_utc(expires_at) <= now:
            failure = Result.failure(ErrorKind.VALIDATION_ERROR, "Expiry must be in the future.")
        else:
            effective_from = valid_from if valid_from is not None else entity.valid_from
            effective_expires = expires_at if expires_at is not None else entity.expires_at
            effective_from = ensure_utc(effective_from)
            effective_expires = ensure_utc(effective_expires)
            failure = None
            if effective_from is not None and effective_expires is not None and effective_expires <= effective_from:
                failure = Result.failure(ErrorKind.VALIDATION_ERROR, "Expiry must be after valid-from.")
        if failure is not None:
            return self._reject(
                failure,
                actor=actor,
                client=client,
                building_id=entity.building_id,
                intercom_id=entity.intercom_id,
                code_id=entity.id,
            )

        if code:
            entity.code_hash = hash_secret(code)
            entity.code_plain = code
        if is_single_use is not None:
            entity.is_single_use = is_single_use
        if valid_from is not None:
            entity.valid_from = ensure_utc(valid_from)
        if expires_at is not None:
            entity.expires_at = ensure_utc(expires_at)
        entity.updated_by = actor.user_id
        entity.updated_at = now

        self._commit_code(entity, actor=actor, reason="Access code updated", client=client)
        return Result.success(entity, "Access code updated.")

    def set_active(
        self,
        actor: Actor,
        code_id: int,
        *,
        active: bool,
        client: ClientInfo | None = None,
    ) -> Result[IntercomAccessCode]:
        """显式启用或停用访问码，重复调用结果不变。"""
        client = client or ClientInfo()
        loaded = self._load_for_mutation(actor, code_id, client)
        if not loaded.ok:
            return loaded
        entity = loaded.value

        if entity.is_active != active:
            entity.is_active = active
            entity.updated_by = actor.user_id
            entity.updated_at = utc_now()
        reason = "Access code activated" if active else "Access code deactivated"
        self._commit_code(entity, actor=actor, reason=reason, client=client)
        return Result.success(entity, "Activated." if active else "Deactivated.")

    def delete_code(self, actor: Actor, code_id: int, *, client: ClientInfo | None = None) -> Result[None]:
        """逻辑删除访问码：停用并记录删除时间，历史审计记录保持可追溯。"""
        client = client or ClientInfo()
        loaded = self._load_for_mutation(actor, code_id, client)
        if not loaded.ok:
            return Result.failure(loaded.error.kind, loaded.error.message)
        entity = loaded.value

        now = utc_now()
        entity.is_active = False
        entity.deleted_at = now
        entity.updated_by = actor.user_id
        entity.updated_at = now
        self._commit_code(entity, actor=actor, reason="Access code deleted", client=client)
        return Result.success(None, "Deleted.")
