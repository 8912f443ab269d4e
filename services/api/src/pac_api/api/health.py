"""健康检查接口。"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from pac_api.db.session import get_db
from pac_api.models.audit import IntercomAccessLog
from pac_api.schemas.common import ErrorResponse, SuccessResponse
from pac_api.schemas.responses import HealthStatusData
from pac_api.utils.response import success

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    summary="存活探针",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
)
def live(request: Request):
    """进程存活即返回 ok。"""
    return success(request, HealthStatusData(status="ok"))


@router.get(
    "/ready",
    summary="就绪探针",
    description="设备验证必须能写入审计日志，因此以审计表可读作为就绪条件。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def ready(request: Request, db: Session = Depends(get_db)):
    db.execute(select(IntercomAccessLog.id).limit(1))
    return success(request, HealthStatusData(status="ready"))
