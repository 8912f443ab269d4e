"""设备 PIN 验证引擎。

严格按优先级依次匹配，命中即返回：
1. 对讲机不存在直接拒绝。
2. 候选访问码（最新创建优先），一次性访问码需原子核销成功才算命中。
3. 对讲机主 PIN。
4. 可选：对讲机上的用户个人 PIN（由 `verify_user_pins_at_door` 控制）。
5. 以上均未命中则拒绝，原因统一为 "Invalid or expired"。

同一来源 IP 对同一对讲机失败次数过多时，在比对前直接拒绝，原因同样保持笼统。

每次调用恰好写入一条审计日志，并在同一事务内提交。
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from pac_api.core.config import get_settings
from pac_api.models.base import utc_now
from pac_api.models.enums import CredentialType
from pac_api.models.property import Intercom
from pac_api.services.audit import AuditLedger
from pac_api.services.credential_store import (
    consume_single_use_code,
    find_active_master_pin,
    find_candidate_access_codes,
    list_active_user_pins,
)
from pac_api.services.pin_hashing import verify_secret

logger = logging.getLogger("pac_api.verification")

REASON_OK = "OK"
REASON_INTERCOM_NOT_FOUND = "Intercom not found"
REASON_INVALID_OR_EXPIRED = "Invalid or expired"


@dataclass(frozen=True)
class VerificationOutcome:
    """单次设备验证结果。"""

    granted: bool
    reason: str
    credential_type: CredentialType
    credential_ref_id: int | None
    timestamp: datetime


@dataclass(frozen=True)
class _Match:
    credential_type: CredentialType
    credential_ref_id: int
    user_id: int | None


class VerificationEngine:
    """匿名设备调用的开门判定。"""

    def __init__(self, db: Session, ledger: AuditLedger | None = None) -> None:
        self.db = db
        self.ledger = ledger or AuditLedger(db)

    def _match_access_code(self, intercom: Intercom, pin: str, now: datetime) -> _Match | None:
        candidates = find_candidate_access_codes(
            self.db,
            intercom_id=intercom.id,
            building_id=intercom.building_id,
            now=now,
        )
        for code in candidates:
            if not verify_secret(pin, code.code_hash):
                continue
            if code.is_single_use and not consume_single_use_code(self.db, code_id=code.id):
                # 并发请求已先一步核销，该访问码不再可用。
                logger.info("single-use code already consumed: intercom_id=%s code_id=%s", intercom.id, code.id)
                continue
            return _Match(CredentialType.ACCESS_CODE, code.id, code.created_by)
        return None

    def _match_master_pin(self, intercom: Intercom, pin: str) -> _Match | None:
        master = find_active_master_pin(self.db, intercom_id=intercom.id)
        if master is not None and verify_secret(pin, master.pin_hash):
            return _Match(CredentialType.MASTER, master.id, None)
        return None

    def _match_user_pin(self, intercom: Intercom, pin: str) -> _Match | None:
        for user_pin in list_active_user_pins(self.db, intercom_id=intercom.id):
            if verify_secret(pin, user_pin.pin_hash):
                return _Match(CredentialType.USER, user_pin.id, user_pin.user_id)
        return None

    def _record(
        self,
        outcome: VerificationOutcome,
        *,
        intercom_id: int,
        building_id: int | None,
        user_id: int | None,
        source_ip: str | None,
        device_info: str | None,
    ) -> VerificationOutcome:
        self.ledger.append(
            intercom_id=intercom_id,
            building_id=building_id,
            user_id=user_id,
            credential_type=outcome.credential_type,
            credential_ref_id=outcome.credential_ref_id,
            is_success=outcome.granted,
            reason=outcome.reason,
            ip_address=source_ip,
            device_info=device_info,
            occurred_at=outcome.timestamp,
        )
        self.db.commit()

        if outcome.granted:
            logger.info(
                "access granted: intercom_id=%s credential_type=%s ref_id=%s ip=%s",
                intercom_id,
                outcome.credential_type,
                outcome.credential_ref_id,
                source_ip,
            )
        else:
            logger.warning(
                "access denied: intercom_id=%s reason=%s ip=%s",
                intercom_id,
                outcome.reason,
                source_ip,
            )
        return outcome

    def _is_throttled(self, intercom_id: int, source_ip: str | None, now: datetime) -> bool:
        """同一来源在窗口期内失败次数达到上限后，后续请求一律拒绝。

        计数取自审计日志，多实例部署时同样生效。
        """
        settings = get_settings()
        if not source_ip or settings.verify_max_failed_attempts <= 0:
            return False
        failures = self.ledger.count_recent_failures(
            intercom_id=intercom_id,
            ip_address=source_ip,
            since=now - timedelta(seconds=settings.verify_failure_window_seconds),
        )
        return failures >= settings.verify_max_failed_attempts

    def _match(self, intercom: Intercom, pin: str, now: datetime) -> _Match | None:
        settings = get_settings()
        # 空值或超长输入不参与哈希比对。
        if not pin or len(pin) > settings.access_code_max_length:
            return None
        match = self._match_access_code(intercom, pin, now) or self._match_master_pin(intercom, pin)
        if match is None and settings.verify_user_pins_at_door:
            match = self._match_user_pin(intercom, pin)
        return match

    def verify(
        self,
        intercom_id: int,
        pin: str,
        *,
        source_ip: str | None = None,
        device_info: str | None = None,
    ) -> VerificationOutcome:
        """判定设备提交的 PIN 是否放行。

        失败原因对设备刻意保持笼统，避免泄露访问码是否存在或来源已被限流。
        """
        now = utc_now()
        intercom = self.db.get(Intercom, intercom_id)
        if intercom is None:
            outcome = VerificationOutcome(False, REASON_INTERCOM_NOT_FOUND, CredentialType.NONE, None, now)
            return self._record(
                outcome,
                intercom_id=intercom_id,
                building_id=None,
                user_id=None,
                source_ip=source_ip,
                device_info=device_info,
            )

        if self._is_throttled(intercom.id, source_ip, now):
            logger.warning("verification throttled: intercom_id=%s ip=%s", intercom.id, source_ip)
            match = None
        else:
            match = self._match(intercom, pin, now)

        if match is None:
            outcome = VerificationOutcome(False, REASON_INVALID_OR_EXPIRED, CredentialType.NONE, None, now)
            user_id = None
        else:
            outcome = VerificationOutcome(True, REASON_OK, match.credential_type, match.credential_ref_id, now)
            user_id = match.user_id
        return self._record(
            outcome,
            intercom_id=intercom.id,
            building_id=intercom.building_id,
            user_id=user_id,
            source_ip=source_ip,
            device_info=device_info,
        )
