"""凭据存储层。

职责:
1. 读取生效的主 PIN / 用户 PIN / 候选访问码。
2. 写入或覆盖 PIN 哈希（首次创建，之后只替换哈希并记录更新时间）。
3. 一次性访问码的原子核销。

这里不做任何授权判断，调用方需先通过 AuthorizationGuard。
"""

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from pac_api.models.access import IntercomAccessCode, IntercomMasterPin, IntercomUserPin
from pac_api.models.base import utc_now
from pac_api.services.pin_hashing import hash_secret


def find_active_master_pin(db: Session, *, intercom_id: int) -> IntercomMasterPin | None:
    """查询对讲机当前生效的主 PIN。"""
    return (
        db.execute(
            select(IntercomMasterPin)
            .where(IntercomMasterPin.intercom_id == intercom_id)
            .where(IntercomMasterPin.is_active.is_(True))
            .order_by(IntercomMasterPin.id.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def find_active_user_pin(db: Session, *, intercom_id: int, user_id: int) -> IntercomUserPin | None:
    """查询用户在对讲机上当前生效的个人 PIN。"""
    return (
        db.execute(
            select(IntercomUserPin)
            .where(IntercomUserPin.intercom_id == intercom_id)
            .where(IntercomUserPin.user_id == user_id)
            .where(IntercomUserPin.is_active.is_(True))
            .order_by(IntercomUserPin.id.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def list_active_user_pins(db: Session, *, intercom_id: int) -> list[IntercomUserPin]:
    """列出对讲机上全部生效的用户 PIN。"""
    return list(
        db.execute(
            select(IntercomUserPin)
            .where(IntercomUserPin.intercom_id == intercom_id)
            .where(IntercomUserPin.is_active.is_(True))
            .order_by(IntercomUserPin.id.desc())
        )
        .scalars()
        .all()
    )


def find_candidate_access_codes(
    db: Session,
    *,
    intercom_id: int,
    building_id: int,
    now: datetime | None = None,
) -> list[IntercomAccessCode]:
    """查询当前时刻可用于该对讲机的访问码，按创建时间倒序。

    过期判断在读取时惰性完成，没有后台清理任务。
    """
    now = now or utc_now()
    return list(
        db.execute(
            select(IntercomAccessCode)
            .where(IntercomAccessCode.is_active.is_(True))
            .where(IntercomAccessCode.deleted_at.is_(None))
            .where(or_(IntercomAccessCode.valid_from.is_(None), IntercomAccessCode.valid_from <= now))
            .where(or_(IntercomAccessCode.expires_at.is_(None), IntercomAccessCode.expires_at > now))
            .where(
                or_(
                    IntercomAccessCode.intercom_id == intercom_id,
                    (IntercomAccessCode.intercom_id.is_(None)) & (IntercomAccessCode.building_id == building_id),
                )
            )
            .order_by(IntercomAccessCode.created_at.desc(), IntercomAccessCode.id.desc())
        )
        .scalars()
        .all()
    )


def consume_single_use_code(db: Session, *, code_id: int) -> bool:
    """原子核销一次性访问码。

    条件更新 `is_active = true -> false`，仅当恰好影响一行时视为核销成功；
    并发验证同一访问码时最多只有一个请求能拿到这一行。
    """
    result = db.execute(
        update(IntercomAccessCode)
        .where(IntercomAccessCode.id == code_id)
        .where(IntercomAccessCode.is_active.is_(True))
        .values(is_active=False, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def upsert_master_pin(db: Session, *, intercom_id: int, pin: str, actor_user_id: int) -> IntercomMasterPin:
    """创建或轮换对讲机主 PIN。"""
    pin_hash = hash_secret(pin)
    existing = find_active_master_pin(db, intercom_id=intercom_id)
    if existing is None:
        existing = IntercomMasterPin(
            intercom_id=intercom_id,
            pin_hash=pin_hash,
            is_active=True,
            created_by=actor_user_id,
        )
        db.add(existing)
    else:
        existing.pin_hash = pin_hash
        existing.updated_by = actor_user_id
        existing.updated_at = utc_now()
    db.flush()
    return existing


def upsert_user_pin(
    db: Session,
    *,
    intercom_id: int,
    user_id: int,
    pin: str,
    actor_user_id: int,
) -> IntercomUserPin:
    """创建或覆盖用户个人 PIN。"""
    pin_hash = hash_secret(pin)
    existing = find_active_user_pin(db, intercom_id=intercom_id, user_id=user_id)
    if existing is None:
        existing = IntercomUserPin(
            intercom_id=intercom_id,
            user_id=user_id,
            pin_hash=pin_hash,
            is_active=True,
            created_by=actor_user_id,
        )
        db.add(existing)
    else:
        existing.pin_hash = pin_hash
        existing.updated_by = actor_user_id
        existing.updated_at = utc_now()
    db.flush()
    return existing
