"""访问码管理接口。"""

from fastapi import APIRouter, Depends, Path, Query, Request, Response, status
from sqlalchemy.orm import Session

from pac_api.db.session import get_db
from pac_api.dependencies import get_request_context
from pac_api.exceptions import raise_for_result
from pac_api.schemas.common import ErrorResponse, SuccessResponse
from pac_api.schemas.intercom_access import AccessCodeCreateRequest, AccessCodeUpdateRequest
from pac_api.schemas.responses import AccessCodeData, AccessCodePageData
from pac_api.services import AccessCodeService, ClientInfo, normalize_page
from pac_api.utils.response import success

router = APIRouter(prefix="/access-codes", tags=["access-codes"])

_MUTATION_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


@router.get(
    "",
    summary="查询访问码列表",
    description=(
        "超级管理员可见全部；住户仅可见自己创建的访问码；"
        "其他角色可见有权访问楼宇内的访问码，并按自身数据可见性模式过滤。"
    ),
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccessCodePageData],
    responses={401: {"model": ErrorResponse}},
)
def list_access_codes(
    request: Request,
    building_id: int | None = Query(default=None, alias="buildingId", description="按楼宇过滤。"),
    intercom_id: int | None = Query(default=None, alias="intercomId", description="按对讲机过滤。"),
    page: int = Query(default=1, ge=1, description="页码，从 1 开始。"),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1, description="每页条数。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """分页查询访问码，最新创建优先。"""
    page, page_size = normalize_page(page, page_size)
    items, total = AccessCodeService(db).list_codes(
        ctx.actor,
        building_id=building_id,
        intercom_id=intercom_id,
        page=page,
        page_size=page_size,
    )
    return success(
        request,
        AccessCodePageData(
            total=total,
            page=page,
            page_size=page_size,
            items=[AccessCodeData.model_validate(item) for item in items],
        ),
    )


@router.post(
    "",
    summary="创建访问码",
    description=(
        "住户创建的访问码固定归属其入住楼宇；其他角色必须提供 buildingId 且具备该楼宇访问权限，"
        "超级管理员不受楼宇权限限制。过期时间必须晚于当前时间与生效时间。"
    ),
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[AccessCodeData],
    responses=_MUTATION_ERRORS,
)
def create_access_code(
    payload: AccessCodeCreateRequest,
    request: Request,
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """创建楼宇级或对讲机级访问码。"""
    result = AccessCodeService(db).create_code(
        ctx.actor,
        code=payload.code,
        building_id=payload.building_id,
        intercom_id=payload.intercom_id,
        tenant_id=payload.tenant_id,
        is_single_use=payload.is_single_use,
        valid_from=payload.valid_from,
        expires_at=payload.expires_at,
        client=ClientInfo.from_request(request),
    )
    raise_for_result(result)
    return success(request, AccessCodeData.model_validate(result.value), message=result.message)


@router.put(
    "/{code_id}",
    summary="更新访问码",
    description="仅可修改访问码、一次性标记与有效期；楼宇与对讲机不可修改。住户只能修改自己创建的访问码。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccessCodeData],
    responses=_MUTATION_ERRORS,
)
def update_access_code(
    payload: AccessCodeUpdateRequest,
    request: Request,
    code_id: int = Path(..., description="访问码 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """更新访问码的可变字段。"""
    result = AccessCodeService(db).update_code(
        ctx.actor,
        code_id,
        code=payload.code,
        is_single_use=payload.is_single_use,
        valid_from=payload.valid_from,
        expires_at=payload.expires_at,
        client=ClientInfo.from_request(request),
    )
    raise_for_result(result)
    return success(request, AccessCodeData.model_validate(result.value), message=result.message)


def _set_active(request: Request, code_id: int, active: bool, ctx, db: Session):
    result = AccessCodeService(db).set_active(
        ctx.actor,
        code_id,
        active=active,
        client=ClientInfo.from_request(request),
    )
    raise_for_result(result)
    return success(request, AccessCodeData.model_validate(result.value), message=result.message)


@router.patch(
    "/{code_id}/deactivate",
    summary="停用访问码",
    description="将访问码显式置为停用，重复调用结果不变。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccessCodeData],
    responses=_MUTATION_ERRORS,
)
def deactivate_access_code(
    request: Request,
    code_id: int = Path(..., description="访问码 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """停用访问码。"""
    return _set_active(request, code_id, False, ctx, db)


@router.patch(
    "/{code_id}/activate",
    summary="启用访问码",
    description="将访问码显式置为启用，重复调用结果不变。已过期的访问码启用后仍不会通过验证。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[AccessCodeData],
    responses=_MUTATION_ERRORS,
)
def activate_access_code(
    request: Request,
    code_id: int = Path(..., description="访问码 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """启用访问码。"""
    return _set_active(request, code_id, True, ctx, db)


@router.delete(
    "/{code_id}",
    summary="删除访问码",
    description="逻辑删除：访问码停用且不再出现在列表中，历史日志仍可按 codeId 查询。",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=_MUTATION_ERRORS,
)
def delete_access_code(
    request: Request,
    code_id: int = Path(..., description="访问码 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """删除访问码。"""
    result = AccessCodeService(db).delete_code(ctx.actor, code_id, client=ClientInfo.from_request(request))
    raise_for_result(result)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
