"""用户资料接口。"""

from fastapi import APIRouter, Depends, Path, Query, Request, status

from oj_identity.dependencies import get_auth_service, get_optional_identity
from oj_identity.models.identity import Identity
from oj_identity.schemas.common import ErrorResponse, PaginationMeta, SuccessResponse
from oj_identity.schemas.identity import IdentityData, IdentityPayload, IdentitySummary
from oj_identity.services import AuthService
from oj_identity.utils.response import success

router = APIRouter(prefix="/users", tags=["users"])


def _page_meta(page: int, page_size: int | None, count: int, service: AuthService) -> dict:
    size = page_size if page_size is not None else service.settings.default_page_size
    return PaginationMeta(page=page, page_size=size, count=count, has_more=count >= size).model_dump()


@router.post(
    "",
    summary="注册或更新用户",
    description=(
        "不带 id 时注册新用户；带 id 时按部分更新语义修改资料，仅本人或管理员可操作。"
        "只有请求体中出现的字段会被修改，出现 password 时同时更新口令。"
    ),
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[IdentityData],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def post_user(
    payload: IdentityPayload,
    request: Request,
    acting: Identity | None = Depends(get_optional_identity),
    service: AuthService = Depends(get_auth_service),
):
    """注册或更新用户资料。"""
    identity = service.create_or_update_identity(payload, acting=acting)
    return success(request, IdentityData.model_validate(identity))


@router.get(
    "",
    summary="分页查询用户",
    description="按 id、username 或 created_at 排序分页，页码从 1 开始；超出数据范围返回 404。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[IdentitySummary]],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def list_users(
    request: Request,
    order_by: str = Query(default="id", description="排序字段。"),
    order: str = Query(default="ASC", description="排序方向 ASC/DESC。"),
    page: int = Query(default=1, description="页码（从 1 开始）。"),
    page_size: int | None = Query(default=None, description="每页条数，缺省取配置值。"),
    service: AuthService = Depends(get_auth_service),
):
    """分页查询用户公开资料。"""
    data = service.list_identities(order_by=order_by, order=order, page=page, page_size=page_size)
    return success(request, data, meta=_page_meta(page, page_size, len(data), service))


@router.get(
    "/search",
    summary="搜索用户",
    description="在用户名、邮箱、昵称中做不区分大小写的子串匹配，分页规则同列表接口。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[IdentitySummary]],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def search_users(
    request: Request,
    keyword: str = Query(default="", description="搜索关键字。"),
    order_by: str = Query(default="id", description="排序字段。"),
    order: str = Query(default="ASC", description="排序方向 ASC/DESC。"),
    page: int = Query(default=1, description="页码（从 1 开始）。"),
    page_size: int | None = Query(default=None, description="每页条数，缺省取配置值。"),
    service: AuthService = Depends(get_auth_service),
):
    """搜索用户公开资料。"""
    data = service.search_identities(keyword, order_by=order_by, order=order, page=page, page_size=page_size)
    return success(request, data, meta=_page_meta(page, page_size, len(data), service))


@router.get(
    "/{key}",
    summary="查询单个用户",
    description="按 id、username 或 email 查询用户资料。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[IdentityData],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_user(
    request: Request,
    key: str = Path(..., description="查询值。"),
    by: str = Query(default="id", description="查询字段 id/username/email。"),
    service: AuthService = Depends(get_auth_service),
):
    """查询单个用户资料。"""
    identity = service.get_identity(key, by=by)
    return success(request, IdentityData.model_validate(identity))
