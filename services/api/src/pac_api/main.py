"""FastAPI 应用入口点。"""

import logging

from fastapi import FastAPI

from pac_api.core.config import get_settings
from pac_api.exceptions import register_exception_handlers
from pac_api.middlewares import register_middlewares
from pac_api.api.router import api_router

settings = get_settings()


def _setup_logging() -> None:
    """初始化根日志配置（重复调用不会重复添加处理器）。"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    _setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        description=(
            "物业门禁控制接口。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "管理接口通过访问令牌进行认证；设备验证接口 `POST /intercoms/{id}/access/verify` 允许匿名调用。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "intercom-access", "description": "对讲机主 PIN、用户 PIN 管理与设备验证。"},
            {"name": "access-codes", "description": "楼宇/对讲机访问码的创建、修改、启停与删除。"},
            {"name": "access-logs", "description": "按可见范围查询门禁审计日志。"},
        ],
    )

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
