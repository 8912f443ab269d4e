"""应用异常处理注册。

业务层以 `Result` 返回预期内失败，接口层通过 `raise_for_result` 转换为 HTTPException，
再由这里注册的处理器统一包装为错误响应结构。
"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pac_api.services.results import AccessError, ErrorKind, Result
from pac_api.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger("pac_api.exceptions")

# 业务失败类型 -> (HTTP 状态码, 错误码)。
_ERROR_KIND_STATUS: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    ErrorKind.NOT_ALLOWED: (status.HTTP_403_FORBIDDEN, "NOT_ALLOWED"),
    ErrorKind.MASTER_PIN_REQUIRED: (status.HTTP_403_FORBIDDEN, "MASTER_PIN_REQUIRED"),
    ErrorKind.INVALID_MASTER_PIN: (status.HTTP_403_FORBIDDEN, "INVALID_MASTER_PIN"),
    ErrorKind.INVALID_CREDENTIAL: (status.HTTP_400_BAD_REQUEST, "INVALID_CREDENTIAL"),
    ErrorKind.VALIDATION_ERROR: (status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"),
    ErrorKind.INVALID_OR_EXPIRED: (status.HTTP_400_BAD_REQUEST, "INVALID_OR_EXPIRED"),
}

# HTTP 状态码 -> (默认错误码, 默认提示, 处理建议)。
_HTTP_DEFAULTS: dict[int, tuple[str, str, str]] = {
    status.HTTP_400_BAD_REQUEST: (
        "BAD_REQUEST",
        "请求参数不合法。",
        "请检查 PIN、访问码与有效期参数后重试。",
    ),
    status.HTTP_401_UNAUTHORIZED: (
        "UNAUTHORIZED",
        "未登录或登录状态已失效。",
        "请重新登录并携带有效访问令牌。",
    ),
    status.HTTP_403_FORBIDDEN: (
        "FORBIDDEN",
        "无权限访问该资源。",
        "请确认当前账号角色及楼宇授权是否正确。",
    ),
    status.HTTP_404_NOT_FOUND: (
        "NOT_FOUND",
        "请求资源不存在。",
        "请确认对讲机、楼宇、用户或访问码 ID 是否正确。",
    ),
    status.HTTP_422_UNPROCESSABLE_CONTENT: (
        "VALIDATION_ERROR",
        "请求参数校验失败。",
        "请根据错误字段提示修正请求参数后重试。",
    ),
}
_FALLBACK_DEFAULTS = ("HTTP_ERROR", "请求处理失败。", "请稍后重试，若持续失败请联系管理员。")

# 依赖层抛出的简短英文 detail，统一替换为对应状态的中文提示。
_RAW_DETAIL_STATUS = {
    "forbidden": status.HTTP_403_FORBIDDEN,
    "unauthorized": status.HTTP_401_UNAUTHORIZED,
    "invalid token": status.HTTP_401_UNAUTHORIZED,
}


def access_error_to_http(error: AccessError) -> HTTPException:
    """将业务失败转换为带结构化 detail 的 HTTPException。"""
    status_code, code = _ERROR_KIND_STATUS.get(error.kind, (status.HTTP_400_BAD_REQUEST, "BAD_REQUEST"))
    return HTTPException(
        status_code=status_code,
        detail={"code": code, "message": error.message, "details": {"reason": error.kind.value}},
    )


def raise_for_result(result: Result) -> None:
    """业务结果失败时抛出对应 HTTP 异常。"""
    if result.error is not None:
        raise access_error_to_http(result.error)


def _describe_http_error(detail: object, status_code: int) -> tuple[str, str, dict[str, object]]:
    """从 HTTPException.detail 中提取错误码、提示与细节，缺失部分按状态码补齐。"""
    code, message, suggestion = _HTTP_DEFAULTS.get(status_code, _FALLBACK_DEFAULTS)
    details: dict[str, object] = {"status_code": status_code, "reason": code.lower(), "suggestion": suggestion}

    if isinstance(detail, str):
        mapped = _RAW_DETAIL_STATUS.get(detail.strip().lower())
        message = _HTTP_DEFAULTS[mapped][1] if mapped is not None else detail
    elif isinstance(detail, dict):
        code = str(detail.get("code") or code)
        message = str(detail.get("message") or detail.get("detail") or message)
        extra = detail.get("details")
        if isinstance(extra, dict):
            details.update(extra)
        elif extra is not None:
            details["details"] = extra
        details.update({key: value for key, value in detail.items() if key not in {"code", "message", "details"}})
    elif detail is not None:
        details["detail"] = detail
    return code, message, details


async def http_exception_handler(request: Request, exc: HTTPException):
    """将协议异常统一包装为标准错误结构。"""
    code, message, details = _describe_http_error(exc.detail, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message, details=details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求体/查询参数校验失败，逐字段返回错误原因。"""
    code, message, suggestion = _HTTP_DEFAULTS[status.HTTP_422_UNPROCESSABLE_CONTENT]
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", []) if part not in {"body", "query", "path"}),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=error_payload(
            request,
            code=code,
            message=message,
            details={
                "status_code": status.HTTP_422_UNPROCESSABLE_CONTENT,
                "reason": "validation_error",
                "suggestion": suggestion,
                "errors": errors,
            },
        ),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """未捕获异常只记录日志，响应中不暴露内部细节。"""
    logger.exception("unhandled exception: %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(
            request,
            code="INTERNAL_ERROR",
            message=DEFAULT_ERROR_MESSAGE,
            details={
                "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "reason": "unexpected_exception",
                "suggestion": "请稍后重试，若持续失败请联系管理员并提供 request_id。",
            },
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
