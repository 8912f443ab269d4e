"""全局门禁日志查询接口。"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from pac_api.db.session import get_db
from pac_api.dependencies import get_request_context
from pac_api.models.enums import CredentialType
from pac_api.schemas.common import ErrorResponse, SuccessResponse
from pac_api.schemas.responses import AccessLogData, AccessLogPageData
from pac_api.services import AccessLogFilters, AuditLedger, normalize_page
from pac_api.utils.response import success

router = APIRouter(prefix="/access-logs", tags=["access-logs"])


@router.get(
    "",
    summary="查询门禁日志",
    description=(
        "超级管理员可见全部；住户仅可见归属于自己的记录；"
        "其他角色可见有权访问楼宇内的记录。按发生时间倒序分页返回。"
    ),
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccessLogPageData],
    responses={401: {"model": ErrorResponse}},
)
def list_access_logs(
    request: Request,
    building_id: int | None = Query(default=None, alias="buildingId", description="按楼宇过滤。"),
    intercom_id: int | None = Query(default=None, alias="intercomId", description="按对讲机过滤。"),
    code_id: int | None = Query(default=None, alias="codeId", description="按访问码过滤。"),
    user_id: int | None = Query(default=None, alias="userId", description="按用户过滤。"),
    occurred_from: datetime | None = Query(default=None, alias="from", description="起始时间（含）。"),
    occurred_to: datetime | None = Query(default=None, alias="to", description="结束时间（含）。"),
    is_success: bool | None = Query(default=None, alias="success", description="按成功/失败过滤。"),
    credential_type: CredentialType | None = Query(default=None, alias="credentialType", description="按凭据类型过滤。"),
    page: int = Query(default=1, ge=1, description="页码，从 1 开始。"),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1, description="每页条数。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """按调用方可见范围分页查询门禁日志。"""
    page, page_size = normalize_page(page, page_size)
    items, total = AuditLedger(db).query(
        ctx.actor,
        AccessLogFilters(
            building_id=building_id,
            intercom_id=intercom_id,
            code_id=code_id,
            user_id=user_id,
            occurred_from=occurred_from,
            occurred_to=occurred_to,
            success=is_success,
            credential_type=credential_type,
        ),
        page=page,
        page_size=page_size,
    )
    return success(
        request,
        AccessLogPageData(
            total=total,
            page=page,
            page_size=page_size,
            items=[AccessLogData.model_validate(item) for item in items],
        ),
    )
