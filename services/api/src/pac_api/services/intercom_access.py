"""对讲机 PIN 管理服务（主 PIN、用户 PIN 与本人 PIN 自助修改）。"""

import logging

from sqlalchemy.orm import Session

from pac_api.models.access import IntercomMasterPin, IntercomUserPin
from pac_api.models.enums import CredentialType
from pac_api.models.identity import User
from pac_api.models.property import Intercom
from pac_api.services.access_scope import AccessScopeResolver
from pac_api.services.audit import AuditLedger, ClientInfo
from pac_api.services.authorization import Actor, AuthorizationGuard
from pac_api.services.credential_store import find_active_user_pin, upsert_master_pin, upsert_user_pin
from pac_api.services.pin_hashing import verify_secret
from pac_api.services.results import ErrorKind, Result

logger = logging.getLogger("pac_api.intercom_access")


class IntercomAccessService:
    """PIN 写操作编排：授权 -> 写凭据 -> 写审计 -> 提交。

    业务失败同样写入一条失败审计后再返回。
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.resolver = AccessScopeResolver(db)
        self.guard = AuthorizationGuard(db, self.resolver)
        self.ledger = AuditLedger(db, self.resolver)

    def _building_id(self, intercom_id: int) -> int | None:
        intercom = self.db.get(Intercom, intercom_id)
        return intercom.building_id if intercom else None

    def _fail(
        self,
        result: Result,
        *,
        actor: Actor,
        intercom_id: int,
        credential_type: CredentialType,
        client: ClientInfo,
    ) -> Result:
        self.ledger.append(
            intercom_id=intercom_id,
            building_id=self._building_id(intercom_id),
            user_id=actor.user_id,
            credential_type=credential_type,
            is_success=False,
            reason=result.message,
            ip_address=client.ip_address,
            device_info=client.device_info,
        )
        self.db.commit()
        logger.info(
            "pin mutation rejected: intercom_id=%s actor_user_id=%s kind=%s",
            intercom_id,
            actor.user_id,
            result.error.kind,
        )
        return result

    def _succeed(
        self,
        row: IntercomMasterPin | IntercomUserPin,
        *,
        actor: Actor,
        intercom: Intercom,
        credential_type: CredentialType,
        reason: str,
        client: ClientInfo,
    ) -> None:
        self.ledger.append(
            intercom_id=intercom.id,
            building_id=intercom.building_id,
            user_id=actor.user_id,
            credential_type=credential_type,
            credential_ref_id=row.id,
            is_success=True,
            reason=reason,
            ip_address=client.ip_address,
            device_info=client.device_info,
        )
        self.db.commit()
        logger.info("%s: intercom_id=%s actor_user_id=%s", reason, intercom.id, actor.user_id)

    def set_master_pin(
        self,
        actor: Actor,
        *,
        intercom_id: int,
        pin: str,
        client: ClientInfo | None = None,
    ) -> Result[IntercomMasterPin]:
        """设置或轮换对讲机主 PIN。"""
        client = client or ClientInfo()
        fail_kwargs = {"actor": actor, "intercom_id": intercom_id, "credential_type": CredentialType.MASTER, "client": client}

        allowed = self.guard.authorize_set_master_pin(actor)
        if not allowed.ok:
            return self._fail(allowed, **fail_kwargs)
        intercom = self.db.get(Intercom, intercom_id)
        if intercom is None:
            return self._fail(Result.failure(ErrorKind.NOT_FOUND, f"Intercom {intercom_id} not found."), **fail_kwargs)

        row = upsert_master_pin(self.db, intercom_id=intercom_id, pin=pin, actor_user_id=actor.user_id)
        self._succeed(
            row,
            actor=actor,
            intercom=intercom,
            credential_type=CredentialType.MASTER,
            reason="Master pin set/updated",
            client=client,
        )
        return Result.success(row, "Master pin set/updated.")

    def set_user_pin(
        self,
        actor: Actor,
        *,
        intercom_id: int,
        target_user_id: int,
        pin: str,
        master_pin: str | None = None,
        client: ClientInfo | None = None,
    ) -> Result[IntercomUserPin]:
        """设置或重置指定用户的 PIN。

        本人可直接修改；超级管理员重置他人 PIN 时必须提供当前主 PIN。
        """
        client = client or ClientInfo()
        fail_kwargs = {"actor": actor, "intercom_id": intercom_id, "credential_type": CredentialType.USER, "client": client}

        allowed = self.guard.authorize_user_pin_reset(
            actor,
            intercom_id=intercom_id,
            target_user_id=target_user_id,
            master_pin=master_pin,
        )
        if not allowed.ok:
            return self._fail(allowed, **fail_kwargs)

        intercom = self.db.get(Intercom, intercom_id)
        if intercom is None:
            return self._fail(Result.failure(ErrorKind.NOT_FOUND, f"Intercom {intercom_id} not found."), **fail_kwargs)
        target = self.db.get(User, target_user_id)
        if target is None or not target.is_active:
            return self._fail(
                Result.failure(ErrorKind.NOT_FOUND, f"User {target_user_id} not found or inactive."),
                **fail_kwargs,
            )

        row = upsert_user_pin(
            self.db,
            intercom_id=intercom_id,
            user_id=target_user_id,
            pin=pin,
            actor_user_id=actor.user_id,
        )
        reason = "Own pin set/updated" if actor.user_id == target_user_id else "User pin set/updated by admin"
        self._succeed(row, actor=actor, intercom=intercom, credential_type=CredentialType.USER, reason=reason, client=client)
        return Result.success(row, "User pin set/updated.")

    def update_own_pin(
        self,
        actor: Actor,
        *,
        intercom_id: int,
        new_pin: str,
        old_pin: str | None = None,
        client: ClientInfo | None = None,
    ) -> Result[IntercomUserPin]:
        """本人 PIN 自助修改：尚无 PIN 时直接创建，已有 PIN 时必须校验旧 PIN。"""
        client = client or ClientInfo()
        fail_kwargs = {"actor": actor, "intercom_id": intercom_id, "credential_type": CredentialType.USER, "client": client}

        intercom = self.db.get(Intercom, intercom_id)
        if intercom is None:
            return self._fail(Result.failure(ErrorKind.NOT_FOUND, f"Intercom {intercom_id} not found."), **fail_kwargs)

        existing = find_active_user_pin(self.db, intercom_id=intercom_id, user_id=actor.user_id)
        if existing is not None:
            if not old_pin:
                return self._fail(Result.failure(ErrorKind.VALIDATION_ERROR, "Old pin is required."), **fail_kwargs)
            if not verify_secret(old_pin, existing.pin_hash):
                return self._fail(Result.failure(ErrorKind.INVALID_CREDENTIAL, "Old pin does not match."), **fail_kwargs)

        row = upsert_user_pin(
            self.db,
            intercom_id=intercom_id,
            user_id=actor.user_id,
            pin=new_pin,
            actor_user_id=actor.user_id,
        )
        reason = "Own pin created" if existing is None else "Own pin updated"
        self._succeed(row, actor=actor, intercom=intercom, credential_type=CredentialType.USER, reason=reason, client=client)
        return Result.success(row, "Pin created." if existing is None else "Pin updated.")
