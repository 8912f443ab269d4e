"""对讲机门禁接口（PIN 管理、设备验证、按对讲机查询日志）。"""

from datetime import datetime

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from pac_api.db.session import get_db
from pac_api.dependencies import get_request_context
from pac_api.exceptions import raise_for_result
from pac_api.models.access import IntercomMasterPin, IntercomUserPin
from pac_api.models.enums import CredentialType
from pac_api.schemas.common import ErrorResponse, SuccessResponse
from pac_api.schemas.intercom_access import MasterPinSetRequest, OwnPinUpdateRequest, UserPinSetRequest, VerifyPinRequest
from pac_api.schemas.responses import AccessLogData, AccessLogPageData, PinOperationData, VerifyResultData
from pac_api.services import (
    AccessLogFilters,
    AuditLedger,
    AuthorizationGuard,
    ClientInfo,
    IntercomAccessService,
    Result,
    VerificationEngine,
    normalize_page,
)
from pac_api.utils.response import success

router = APIRouter(prefix="/intercoms/{intercom_id}/access", tags=["intercom-access"])

_AUTH_ERRORS = {401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}


def _pin_operation_data(intercom_id: int, result: Result[IntercomMasterPin | IntercomUserPin]) -> PinOperationData:
    row = result.value
    return PinOperationData(
        intercom_id=intercom_id,
        user_id=getattr(row, "user_id", None),
        credential_ref_id=row.id,
        message=result.message,
    )


@router.post(
    "/master-pin",
    summary="设置/轮换主 PIN",
    description="仅超级管理员可调用。对讲机尚无主 PIN 时创建，已有时替换哈希。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PinOperationData],
    responses=_AUTH_ERRORS,
)
def set_master_pin(
    payload: MasterPinSetRequest,
    request: Request,
    intercom_id: int = Path(..., description="对讲机 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """设置对讲机主 PIN。"""
    result = IntercomAccessService(db).set_master_pin(
        ctx.actor,
        intercom_id=intercom_id,
        pin=payload.pin,
        client=ClientInfo.from_request(request),
    )
    raise_for_result(result)
    return success(request, _pin_operation_data(intercom_id, result), message=result.message)


@router.post(
    "/users/{user_id}/pin",
    summary="设置/重置用户 PIN",
    description="本人可直接设置；超级管理员重置他人 PIN 时必须提供该对讲机当前主 PIN（masterPin）。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PinOperationData],
    responses=_AUTH_ERRORS,
)
def set_user_pin(
    payload: UserPinSetRequest,
    request: Request,
    intercom_id: int = Path(..., description="对讲机 ID。"),
    user_id: int = Path(..., description="目标用户 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """设置或重置指定用户的 PIN。"""
    result = IntercomAccessService(db).set_user_pin(
        ctx.actor,
        intercom_id=intercom_id,
        target_user_id=user_id,
        pin=payload.pin,
        master_pin=payload.master_pin,
        client=ClientInfo.from_request(request),
    )
    raise_for_result(result)
    return success(request, _pin_operation_data(intercom_id, result), message=result.message)


def _update_own_pin(
    payload: OwnPinUpdateRequest,
    request: Request,
    intercom_id: int,
    ctx,
    db: Session,
):
    result = IntercomAccessService(db).update_own_pin(
        ctx.actor,
        intercom_id=intercom_id,
        new_pin=payload.new_pin,
        old_pin=payload.old_pin,
        client=ClientInfo.from_request(request),
    )
    raise_for_result(result)
    return success(request, _pin_operation_data(intercom_id, result), message=result.message)


@router.post(
    "/pin/self",
    summary="修改本人 PIN",
    description="尚未设置 PIN 时直接创建；已设置时必须提供旧 PIN（oldPin）并校验通过。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PinOperationData],
    responses={400: {"model": ErrorResponse}, **_AUTH_ERRORS},
)
def update_own_pin(
    payload: OwnPinUpdateRequest,
    request: Request,
    intercom_id: int = Path(..., description="对讲机 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """修改本人 PIN。"""
    return _update_own_pin(payload, request, intercom_id, ctx, db)


@router.put(
    "/me/pin",
    summary="修改本人 PIN（PUT 形式）",
    description="与 `POST /pin/self` 行为一致。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PinOperationData],
    responses={400: {"model": ErrorResponse}, **_AUTH_ERRORS},
)
def put_own_pin(
    payload: OwnPinUpdateRequest,
    request: Request,
    intercom_id: int = Path(..., description="对讲机 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """修改本人 PIN。"""
    return _update_own_pin(payload, request, intercom_id, ctx, db)


@router.post(
    "/verify",
    summary="设备验证 PIN",
    description=(
        "供对讲机设备匿名调用。无论放行与否均返回 200，结果见 `granted` 字段；"
        "失败原因对设备保持笼统，不区分访问码不存在、已过期或已使用。"
    ),
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[VerifyResultData],
)
def verify_pin(
    payload: VerifyPinRequest,
    request: Request,
    intercom_id: int = Path(..., description="对讲机 ID。"),
    db: Session = Depends(get_db),
):
    """判定设备提交的 PIN 是否放行。"""
    client = ClientInfo.from_request(request)
    outcome = VerificationEngine(db).verify(
        intercom_id,
        payload.pin,
        source_ip=client.ip_address,
        device_info=client.device_info,
    )
    return success(
        request,
        VerifyResultData(
            granted=outcome.granted,
            reason=outcome.reason,
            credential_type=outcome.credential_type,
            credential_ref_id=outcome.credential_ref_id,
            timestamp=outcome.timestamp,
        ),
    )


@router.get(
    "/logs",
    summary="查询对讲机门禁日志",
    description="仅超级管理员可调用，按发生时间倒序分页返回。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccessLogPageData],
    responses=_AUTH_ERRORS,
)
def list_intercom_logs(
    request: Request,
    intercom_id: int = Path(..., description="对讲机 ID。"),
    page: int = Query(default=1, ge=1, description="页码，从 1 开始。"),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1, description="每页条数。"),
    occurred_from: datetime | None = Query(default=None, alias="from", description="起始时间（含）。"),
    occurred_to: datetime | None = Query(default=None, alias="to", description="结束时间（含）。"),
    is_success: bool | None = Query(default=None, alias="success", description="按成功/失败过滤。"),
    credential_type: CredentialType | None = Query(default=None, alias="credentialType", description="按凭据类型过滤。"),
    user_id: int | None = Query(default=None, alias="userId", description="按用户过滤。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """分页查询单台对讲机的门禁日志。"""
    raise_for_result(AuthorizationGuard(db).authorize_view_intercom_logs(ctx.actor))

    page, page_size = normalize_page(page, page_size)
    items, total = AuditLedger(db).query(
        ctx.actor,
        AccessLogFilters(
            intercom_id=intercom_id,
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
