"""PIN 与访问码哈希。"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets

from pac_api.core.config import get_settings

_ALGORITHM = "pbkdf2_sha256"


def hash_secret(secret: str) -> str:
    """使用 PBKDF2-SHA256 + 随机盐生成哈希。"""
    iterations = get_settings().pin_hash_iterations
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, iterations)
    salt_b64 = base64.b64encode(salt).decode("ascii")
    digest_b64 = base64.b64encode(digest).decode("ascii")
    return f"{_ALGORITHM}${iterations}${salt_b64}${digest_b64}"


def verify_secret(secret: str, secret_hash: str | None) -> bool:
    """以常量时间比较校验明文是否匹配哈希。

    迭代次数取自哈希本身，调整配置不影响历史哈希校验。
    """
    if not secret or not secret_hash:
        return False
    try:
        algorithm, iterations_text, salt_b64, expected_digest_b64 = secret_hash.split("$", 3)
        if algorithm != _ALGORITHM:
            return False
        iterations = int(iterations_text)
        salt = base64.b64decode(salt_b64.encode("ascii"))
        expected_digest = base64.b64decode(expected_digest_b64.encode("ascii"))
    except (ValueError, TypeError, binascii.Error):
        return False
    if iterations < 1:
        return False

    actual_digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(actual_digest, expected_digest)
