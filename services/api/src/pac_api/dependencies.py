"""请求上下文依赖。

职责:
1. 解析并校验访问令牌。
2. 将认证主体映射为本地启用状态的 User。
3. 生成后续路由统一使用的 RequestContext（用户 ID + 角色）。
"""

from dataclasses import dataclass

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from pac_api.core.security import UNAUTHORIZED, AuthenticatedPrincipal, parse_authorization_header
from pac_api.db.session import get_db
from pac_api.models.enums import UserRole
from pac_api.models.identity import User
from pac_api.services.authorization import Actor

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class RequestContext:
    """请求上下文。

    该对象在路由层作为统一输入，避免每个接口重复解析用户与角色。
    """

    # 当前请求用户 ID。
    user_id: int
    # 令牌中的角色，无法识别时为 None。
    role: UserRole | None
    # 认证主体原始信息（来自 JWT）。
    principal: AuthenticatedPrincipal

    @property
    def actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role)


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedPrincipal:
    """提取并解析当前请求认证主体。"""
    authorization = None
    if credentials is not None and credentials.credentials:
        authorization = f"{credentials.scheme} {credentials.credentials}"
    return parse_authorization_header(authorization)


def get_request_context(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> RequestContext:
    """完成认证并确认令牌主体对应一个启用中的本地用户。"""
    try:
        user_id = int(principal.subject)
    except ValueError as exc:
        raise UNAUTHORIZED from exc

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise UNAUTHORIZED

    return RequestContext(
        user_id=user.id,
        role=UserRole.normalize(principal.role),
        principal=principal,
    )

