"""门禁审计服务。"""

from dataclasses import dataclass
from datetime import datetime

from fastapi import Request
from sqlalchemy import false, func, select
from sqlalchemy.orm import Session

from pac_api.core.config import get_settings
from pac_api.models.audit import IntercomAccessLog
from pac_api.models.base import ensure_utc, utc_now
from pac_api.models.enums import CredentialType
from pac_api.services.access_scope import AccessScopeResolver
from pac_api.services.authorization import Actor, CredentialOperation, role_allows

_REASON_MAX_LENGTH = 200
_DEVICE_INFO_MAX_LENGTH = 200


def client_ip(request: Request) -> str | None:
    """从代理头或连接信息中提取客户端 IP。"""
    # 优先读取反向代理透传头，兼容网关/负载均衡场景。
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@dataclass(frozen=True)
class ClientInfo:
    """审计需要的调用方网络信息。"""

    ip_address: str | None = None
    device_info: str | None = None

    @classmethod
    def from_request(cls, request: Request) -> "ClientInfo":
        return cls(ip_address=client_ip(request), device_info=request.headers.get("user-agent"))


def _truncate(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


@dataclass(frozen=True)
class AccessLogFilters:
    """日志查询过滤条件，全部可选。"""

    building_id: int | None = None
    intercom_id: int | None = None
    code_id: int | None = None
    user_id: int | None = None
    occurred_from: datetime | None = None
    occurred_to: datetime | None = None
    success: bool | None = None
    credential_type: CredentialType | None = None


def normalize_page(page: int | None, page_size: int | None) -> tuple[int, int]:
    """规范化分页参数：页码从 1 开始，每页条数限制在配置范围内。"""
    settings = get_settings()
    page = max(page or 1, 1)
    page_size = page_size or settings.default_page_size
    page_size = min(max(page_size, 1), settings.max_page_size)
    return page, page_size


class AuditLedger:
    """只追加的门禁审计日志。

    `append` 是唯一写入口，持久化失败会直接向上抛出，由调用方回滚整个操作。
    """

    def __init__(self, db: Session, resolver: AccessScopeResolver | None = None) -> None:
        self.db = db
        self.resolver = resolver or AccessScopeResolver(db)

    def append(
        self,
        *,
        credential_type: CredentialType,
        is_success: bool,
        reason: str | None,
        intercom_id: int | None = None,
        building_id: int | None = None,
        user_id: int | None = None,
        credential_ref_id: int | None = None,
        ip_address: str | None = None,
        device_info: str | None = None,
        occurred_at: datetime | None = None,
    ) -> IntercomAccessLog:
        """写入一条审计记录并立即刷新到数据库。"""
        entry = IntercomAccessLog(
            intercom_id=intercom_id,
            building_id=building_id,
            user_id=user_id,
            credential_type=credential_type,
            credential_ref_id=credential_ref_id,
            is_success=is_success,
            reason=_truncate(reason, _REASON_MAX_LENGTH),
            occurred_at=occurred_at or utc_now(),
            ip_address=_truncate(ip_address, 64),
            device_info=_truncate(device_info, _DEVICE_INFO_MAX_LENGTH),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def count_recent_failures(self, *, intercom_id: int, ip_address: str, since: datetime) -> int:
        """统计某来源 IP 自 `since` 起对该对讲机的验证失败次数。"""
        return self.db.execute(
            select(func.count(IntercomAccessLog.id))
            .where(IntercomAccessLog.intercom_id == intercom_id)
            .where(IntercomAccessLog.ip_address == _truncate(ip_address, 64))
            .where(IntercomAccessLog.is_success.is_(False))
            .where(IntercomAccessLog.occurred_at >= ensure_utc(since))
        ).scalar_one()

    def _scope(self, stmt, actor: Actor):
        """按调用方可见范围限制日志。

        规则：
        1. 超级管理员可见全部。
        2. 住户仅可见归属于自己的记录。
        3. 其他角色可见其可访问楼宇内的记录。
        """
        if actor.is_super_admin:
            return stmt
        if actor.is_tenant:
            return stmt.where(IntercomAccessLog.user_id == actor.user_id)
        if not role_allows(actor.role, CredentialOperation.QUERY_ACCESS_LOGS):
            return stmt.where(false())
        building_ids = self.resolver.accessible_building_ids(actor.user_id)
        return stmt.where(IntercomAccessLog.building_id.in_(sorted(building_ids)))

    @staticmethod
    def _filter(stmt, filters: AccessLogFilters):
        if filters.building_id is not None:
            stmt = stmt.where(IntercomAccessLog.building_id == filters.building_id)
        if filters.intercom_id is not None:
            stmt = stmt.where(IntercomAccessLog.intercom_id == filters.intercom_id)
        if filters.code_id is not None:
            stmt = stmt.where(IntercomAccessLog.credential_type == CredentialType.ACCESS_CODE).where(
                IntercomAccessLog.credential_ref_id == filters.code_id
            )
        if filters.user_id is not None:
            stmt = stmt.where(IntercomAccessLog.user_id == filters.user_id)
        if filters.occurred_from is not None:
            stmt = stmt.where(IntercomAccessLog.occurred_at >= ensure_utc(filters.occurred_from))
        if filters.occurred_to is not None:
            stmt = stmt.where(IntercomAccessLog.occurred_at <= ensure_utc(filters.occurred_to))
        if filters.success is not None:
            stmt = stmt.where(IntercomAccessLog.is_success.is_(filters.success))
        if filters.credential_type is not None:
            stmt = stmt.where(IntercomAccessLog.credential_type == filters.credential_type)
        return stmt

    def query(
        self,
        actor: Actor,
        filters: AccessLogFilters | None = None,
        *,
        page: int | None = None,
        page_size: int | None = None,
    ) -> tuple[list[IntercomAccessLog], int]:
        """分页查询日志，最新优先，返回当前页记录与总数。"""
        filters = filters or AccessLogFilters()
        page, page_size = normalize_page(page, page_size)

        base = self._filter(self._scope(select(IntercomAccessLog), actor), filters)
        total = self.db.execute(select(func.count()).select_from(base.subquery())).scalar_one()
        items = (
            self.db.execute(
                base.order_by(IntercomAccessLog.occurred_at.desc(), IntercomAccessLog.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            .scalars()
            .all()
        )
        return list(items), total
