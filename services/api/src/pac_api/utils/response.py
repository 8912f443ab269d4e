"""统一响应结构工具。

成功：`{request_id, data, meta}`；失败：`{request_id, error: {code, message, details}}`。
"""

from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from fastapi import Request

DEFAULT_ERROR_MESSAGE = "internal server error"

_DEFAULT_SUCCESS_MESSAGE = "操作成功。"
_SUCCESS_MESSAGES = {
    "GET": "查询成功。",
    "PUT": "更新成功。",
    "PATCH": "更新成功。",
    "DELETE": "删除成功。",
}


def _request_id(request: Request) -> str:
    # 处理器被直接调用（未经过中间件）时没有 request_id。
    return getattr(request.state, "request_id", "")


def _request_trace(request: Request) -> dict[str, Any]:
    """成功与失败响应共用的请求定位信息。"""
    return {
        "method": request.method.upper(),
        "path": request.url.path,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


def _elapsed_ms(request: Request) -> int | None:
    started_at = getattr(request.state, "request_started_at", None)
    if not isinstance(started_at, float):
        return None
    return int((perf_counter() - started_at) * 1000)


def success(
    request: Request,
    data: Any,
    meta: dict[str, Any] | None = None,
    *,
    message: str | None = None,
) -> dict[str, Any]:
    """构造统一成功响应结构。

    `message` 透传业务层结果描述（例如 "Pin created."），为空时按请求方法给出默认文案。
    """
    final_meta = {
        "message": message or _SUCCESS_MESSAGES.get(request.method.upper(), _DEFAULT_SUCCESS_MESSAGE),
        **_request_trace(request),
        "process_ms": _elapsed_ms(request),
    }
    final_meta.update(meta or {})
    return {"request_id": _request_id(request), "data": data, "meta": final_meta}


def error_payload(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """构造统一错误响应结构。"""
    return {
        "request_id": _request_id(request),
        "error": {
            "code": code,
            "message": message,
            "details": {**_request_trace(request), **(details or {})},
        },
    }
