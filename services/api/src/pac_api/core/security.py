"""访问令牌校验。

令牌由用户管理模块签发，本服务只校验签名，并从声明中取出用户 ID 与角色。
"""
from dataclasses import dataclass
from functools import lru_cache
import re
from typing import Any

import jwt
from fastapi import HTTPException, status
from jwt import InvalidTokenError, PyJWKClient

from pac_api.core.config import Settings, get_settings

UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="unauthorized",
)
TOKEN_PLACEHOLDER_UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={
        "code": "AUTH_TOKEN_PLACEHOLDER_NOT_RESOLVED",
        "message": "认证失败：Authorization 仍为变量占位符，未替换为真实访问令牌。",
        "details": {
            "reason": "authorization_placeholder_not_resolved",
            "suggestion": "请在门禁管理端重新获取访问令牌后再发起请求。",
        },
    },
)

# 重复的 Authorization 头可能被代理以逗号拼接，因此按出现顺序逐个提取。
_BEARER_PATTERN = re.compile(r"Bearer\s+([^,\s]+)", re.IGNORECASE)
# 调试工具中常见的未替换变量：{{token}} / ${TOKEN}。
_PLACEHOLDER_PATTERN = re.compile(r"\{\{.*\}\}|\$\{.*\}")
# 角色声明的候选键，按优先级排列（兼容 .NET 身份服务签发的长声明名）。
_ROLE_CLAIM_KEYS = (
    "role",
    "roles",
    "http://schemas.microsoft.com/ws/2008/06/identity/claims/role",
)


@dataclass
class AuthenticatedPrincipal:
    """令牌中解析出的调用方。"""

    # 主体标识（sub 或 uid），对应本地 users.id。
    subject: str
    # 签发方（provider 声明优先，其次 iss）。
    provider: str
    # 角色原文，后续由 UserRole.normalize 解析。
    role: str | None
    email: str | None
    # 完整声明集。
    claims: dict[str, Any]


@lru_cache
def _jwks_client(jwks_url: str) -> PyJWKClient:
    return PyJWKClient(jwks_url)


def _signing_key(token: str, settings: Settings) -> Any:
    """配置了密钥集合地址时按 kid 拉取公钥，否则使用对称密钥。"""
    if not settings.auth_jwks_url:
        return settings.auth_jwt_secret
    try:
        return _jwks_client(settings.auth_jwks_url).get_signing_key_from_jwt(token).key
    except jwt.PyJWKClientError as exc:
        raise UNAUTHORIZED from exc


def decode_access_token(token: str) -> dict[str, Any]:
    """校验签名、签发方、受众与有效期，返回声明集。"""
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            key=_signing_key(token, settings),
            algorithms=settings.auth_algorithms,
            issuer=settings.auth_jwt_issuer,
            audience=settings.auth_jwt_audience,
            leeway=settings.auth_jwt_leeway_seconds,
            options={"verify_signature": True, "verify_aud": bool(settings.auth_jwt_audience)},
        )
    except InvalidTokenError as exc:
        raise UNAUTHORIZED from exc


def _pick_bearer_token(authorization: str | None) -> str:
    """取最后一个非占位符的 Bearer 令牌；只有占位符时返回专门的错误提示。"""
    candidates = _BEARER_PATTERN.findall(authorization or "")
    real_tokens = [token for token in candidates if not _PLACEHOLDER_PATTERN.search(token)]
    if real_tokens:
        return real_tokens[-1]
    if candidates:
        raise TOKEN_PLACEHOLDER_UNAUTHORIZED
    raise UNAUTHORIZED


def _first_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        return next((item.strip() for item in value if isinstance(item, str) and item.strip()), None)
    return None


def _role_from_claims(claims: dict[str, Any]) -> str | None:
    for key in _ROLE_CLAIM_KEYS:
        role = _first_text(claims.get(key))
        if role:
            return role
    return None


def parse_authorization_header(authorization: str | None) -> AuthenticatedPrincipal:
    """解析 Authorization 头，失败统一返回 401。"""
    claims = decode_access_token(_pick_bearer_token(authorization))

    subject = str(claims.get("sub") or claims.get("uid") or "").strip()
    if not subject:
        raise UNAUTHORIZED

    provider = claims.get("provider")
    email = claims.get("email")
    return AuthenticatedPrincipal(
        subject=subject,
        provider=provider if isinstance(provider, str) and provider else str(claims.get("iss") or "jwt"),
        role=_role_from_claims(claims),
        email=email if isinstance(email, str) else None,
        claims=claims,
    )
