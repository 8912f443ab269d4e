"""数据可见性解析服务（ALL / OWN / PM 生态）。

任何带创建人字段的实体都可以通过本服务过滤，无需继承公共基类：
查询场景使用 `scope_clause` 生成 SQL 条件，单实体场景使用 `can_access`。

PM 生态定义：物业经理 P 本人及其直接开通的用户，即
`{P} ∪ {u : u.created_by == P}`，只向下一层，不做传递闭包。
"""

import logging
from typing import Protocol

from sqlalchemy import ColumnElement, false, literal, or_, select, true
from sqlalchemy.orm import Session, aliased

from pac_api.core.config import get_settings
from pac_api.models.enums import DataAccessMode
from pac_api.models.identity import PROPERTY_MANAGER_USER_TYPE_ID, User, UserBuildingPermission, UserType
from pac_api.models.property import Building

logger = logging.getLogger("pac_api.access_scope")


class HasOwner(Protocol):
    """可按归属人过滤的实体能力接口。"""

    @property
    def owner_id(self) -> int | None: ...


def _parse_mode(raw: str | None) -> DataAccessMode:
    """解析用户类型上的可见性配置，缺失或未知值按 ALL 处理。"""
    if not raw:
        return DataAccessMode.ALL
    try:
        return DataAccessMode(raw.strip().upper())
    except ValueError:
        return DataAccessMode.ALL


class AccessScopeResolver:
    """按请求计算用户可见/可操作的数据范围。

    实例只在单个请求内使用，内部缓存不会跨请求共享。
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self._users: dict[int, User | None] = {}
        self._modes: dict[int, DataAccessMode | None] = {}
        self._pm_ids: dict[int, int | None] = {}

    def _get_user(self, user_id: int) -> User | None:
        if user_id not in self._users:
            self._users[user_id] = self.db.get(User, user_id)
        return self._users[user_id]

    def user_exists(self, user_id: int) -> bool:
        return self._get_user(user_id) is not None

    def data_access_mode(self, user_id: int) -> DataAccessMode:
        """返回用户的数据可见性模式。

        用户类型缺失或配置未知时显式放宽为 ALL；
        用户本身不存在时同样返回 ALL，但 `scope_clause` 会对其拒绝全部数据。
        """
        if user_id in self._modes:
            return self._modes[user_id] or DataAccessMode.ALL

        raw = self.db.execute(
            select(UserType.data_access_control)
            .join(User, User.user_type_id == UserType.id)
            .where(User.id == user_id)
        ).scalar_one_or_none()
        mode = _parse_mode(raw)
        self._modes[user_id] = mode
        return mode

    def resolve_property_manager_id(self, user_id: int) -> int | None:
        """沿创建人链向上查找所属物业经理。

        用户自身是物业经理时返回自己；否则逐级检查创建人，遇到第一个物业经理即停止。
        整条链通过一次递归 CTE 查询完成，并以最大深度兜底异常的环形数据。
        """
        if user_id in self._pm_ids:
            return self._pm_ids[user_id]

        max_depth = get_settings().pm_chain_max_depth
        chain = (
            select(
                User.id.label("id"),
                User.created_by.label("created_by"),
                User.user_type_id.label("user_type_id"),
                literal(0).label("depth"),
            )
            .where(User.id == user_id)
            .cte("creator_chain", recursive=True)
        )
        creator = aliased(User)
        chain = chain.union_all(
            select(
                creator.id,
                creator.created_by,
                creator.user_type_id,
                chain.c.depth + 1,
            )
            .where(creator.id == chain.c.created_by)
            # 已到达物业经理的节点不再继续向上展开。
            .where(or_(chain.c.user_type_id.is_(None), chain.c.user_type_id != PROPERTY_MANAGER_USER_TYPE_ID))
            .where(chain.c.depth < max_depth)
        )
        pm_id = self.db.execute(
            select(chain.c.id)
            .where(chain.c.user_type_id == PROPERTY_MANAGER_USER_TYPE_ID)
            .order_by(chain.c.depth)
            .limit(1)
        ).scalar_one_or_none()

        self._pm_ids[user_id] = pm_id
        return pm_id

    def ecosystem_user_ids(self, user_id: int) -> set[int]:
        """返回用户所在 PM 生态的全部成员 ID。

        未知用户返回空集；无法解析物业经理时退化为仅包含自己。
        """
        if not self.user_exists(user_id):
            return set()
        pm_id = self.resolve_property_manager_id(user_id)
        if pm_id is None:
            return {user_id}
        rows = self.db.execute(
            select(User.id).where(or_(User.id == pm_id, User.created_by == pm_id))
        ).scalars()
        return {pm_id, *rows}

    def scope_clause(self, user_id: int, owner_column) -> ColumnElement[bool]:
        """生成作用于归属人列的可见性 SQL 条件。"""
        if not self.user_exists(user_id):
            return false()

        mode = self.data_access_mode(user_id)
        if mode == DataAccessMode.OWN:
            return owner_column == user_id
        if mode == DataAccessMode.PM:
            pm_id = self.resolve_property_manager_id(user_id)
            if pm_id is None:
                return owner_column == user_id
            # 生态成员以子查询形式内联，避免把成员列表拉回应用层。
            members = select(User.id).where(or_(User.id == pm_id, User.created_by == pm_id))
            return or_(owner_column == pm_id, owner_column.in_(members))
        return true()

    def can_access(self, user_id: int, entity: HasOwner) -> bool:
        """判断用户能否访问单个实体。"""
        if not self.user_exists(user_id):
            return False

        mode = self.data_access_mode(user_id)
        if mode == DataAccessMode.OWN:
            return entity.owner_id == user_id
        if mode == DataAccessMode.PM:
            return entity.owner_id in self.ecosystem_user_ids(user_id)
        return True

    def accessible_building_ids(self, user_id: int) -> set[int]:
        """返回用户可访问的楼宇：显式授权 ∪ 作为物业经理/创建人拥有的楼宇。"""
        explicit = self.db.execute(
            select(UserBuildingPermission.building_id)
            .where(UserBuildingPermission.user_id == user_id)
            .where(UserBuildingPermission.is_active.is_(True))
        ).scalars()
        owned = self.db.execute(
            select(Building.id).where(or_(Building.customer_id == user_id, Building.created_by == user_id))
        ).scalars()
        return {*explicit, *owned}
