"""登录与令牌续期接口。"""

from fastapi import APIRouter, Depends, Header, Request, status

from oj_identity.core.security import extract_bearer_token
from oj_identity.dependencies import get_auth_service
from oj_identity.schemas.auth import LoginRequest, TokenData
from oj_identity.schemas.common import ErrorResponse, SuccessResponse
from oj_identity.services import AuthService
from oj_identity.utils.response import success

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/login",
    summary="账号登录",
    description="校验账号密码，返回 Bearer 访问令牌。账号不存在与密码错误返回相同错误。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TokenData],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def login(
    payload: LoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    """账号登录并签发访问令牌。"""
    # 同步路由由框架线程池执行，口令哈希不会阻塞事件循环。
    issued = service.login(payload.username, payload.password)
    return success(request, TokenData.from_issued(issued))


@router.get(
    "/refresh",
    summary="续期访问令牌",
    description="使用仍在有效期内的令牌换取新令牌，新令牌携带用户当前的实时权限。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[TokenData],
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def refresh(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    service: AuthService = Depends(get_auth_service),
):
    """续期访问令牌；已过期的令牌需要重新登录。"""
    issued = service.refresh_token(extract_bearer_token(authorization))
    return success(request, TokenData.from_issued(issued))
